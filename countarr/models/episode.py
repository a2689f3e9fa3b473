from sqlalchemy import Column, Integer, String, DateTime, Boolean, BigInteger, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from countarr.database import Base


class Episode(Base):
    __tablename__ = "episodes"
    __table_args__ = (
        UniqueConstraint("media_item_id", "season", "episode", name="uq_episodes_item_season_episode"),
    )

    id = Column(Integer, primary_key=True)
    media_item_id = Column(Integer, ForeignKey("media_items.id", ondelete="CASCADE"), nullable=False)
    external_id = Column(Integer, nullable=True, index=True)  # Sonarr episode id

    season = Column(Integer, nullable=False)
    episode = Column(Integer, nullable=False)

    title = Column(String, nullable=True)
    size_bytes = Column(BigInteger, default=0)
    quality = Column(String, nullable=True)
    air_date = Column(DateTime, nullable=True)
    has_file = Column(Boolean, default=False)

    media_item = relationship("MediaItem", back_populates="episodes")

    def __repr__(self):
        return f"<Episode S{self.season:02d}E{self.episode:02d}: {self.title}>"
