from sqlalchemy import Column, Integer, String, DateTime, Boolean, BigInteger, Text, ForeignKey, UniqueConstraint

from countarr.database import Base
from countarr.utils.dates import utcnow
from countarr.utils.json_fields import loads_dict


class DownloadEvent(Base):
    """grabbed / downloaded / deleted / renamed"""
    __tablename__ = "download_events"
    __table_args__ = (
        UniqueConstraint("source_app", "media_item_id", "timestamp", "event_type",
                         name="uq_download_events_dedup"),
    )

    id = Column(Integer, primary_key=True)
    media_item_id = Column(Integer, ForeignKey("media_items.id", ondelete="CASCADE"), nullable=False, index=True)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="SET NULL"), nullable=True)

    event_type = Column(String, nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)

    size_bytes = Column(BigInteger, default=0)
    quality = Column(String, nullable=True)
    resolution = Column(String, nullable=True)
    quality_source = Column(String, nullable=True)
    video_codec = Column(String, nullable=True)
    audio_codec = Column(String, nullable=True)
    release_group = Column(String, nullable=True)
    release_title = Column(String, nullable=True)
    indexer = Column(String, nullable=True)
    download_client = Column(String, nullable=True)
    source_app = Column(String, nullable=False)

    quality_score = Column(Integer, nullable=True)
    is_upgrade = Column(Boolean, default=False, nullable=False)
    previous_size_bytes = Column(BigInteger, nullable=True)

    raw_data = Column(Text, nullable=True)  # JSON
    created_at = Column(DateTime, default=utcnow)

    @property
    def raw(self) -> dict:
        return loads_dict(self.raw_data)

    def __repr__(self):
        return f"<DownloadEvent {self.source_app} {self.event_type} {self.timestamp}>"
