from sqlalchemy import Column, Integer, String, DateTime, Text, BigInteger, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from countarr.database import Base
from countarr.utils.dates import utcnow
from countarr.utils.json_fields import loads_list, loads_dict


class MediaItem(Base):
    """Ein Film (Radarr) oder eine Serie (Sonarr)"""
    __tablename__ = "media_items"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_media_items_source_external"),
    )

    id = Column(Integer, primary_key=True)
    external_id = Column(Integer, nullable=False)
    connection_id = Column(Integer, ForeignKey("service_connections.id", ondelete="SET NULL"), nullable=True)
    source = Column(String, nullable=False)  # "radarr", "sonarr"
    type = Column(String, nullable=False)  # "movie", "series"

    title = Column(String, nullable=False, index=True)
    year = Column(Integer, nullable=True)
    tmdb_id = Column(Integer, nullable=True, index=True)
    imdb_id = Column(String, nullable=True)
    tvdb_id = Column(Integer, nullable=True, index=True)

    runtime_minutes = Column(Integer, nullable=True)
    added_at = Column(DateTime, nullable=True)
    size_bytes = Column(BigInteger, default=0)
    quality = Column(String, nullable=True)
    poster_url = Column(String, nullable=True)

    genres = Column(Text, nullable=True)  # JSON array
    extra = Column("metadata", Text, nullable=True)  # JSON object

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    episodes = relationship("Episode", back_populates="media_item", cascade="all, delete-orphan")

    @property
    def genre_list(self) -> list:
        return loads_list(self.genres)

    @property
    def metadata_dict(self) -> dict:
        return loads_dict(self.extra)

    def __repr__(self):
        return f"<MediaItem {self.source}:{self.external_id} {self.title}>"
