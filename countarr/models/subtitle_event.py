from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, UniqueConstraint

from countarr.database import Base


class SubtitleEvent(Base):
    __tablename__ = "subtitle_events"
    __table_args__ = (
        UniqueConstraint("media_item_id", "language", "timestamp", name="uq_subtitle_events_dedup"),
    )

    id = Column(Integer, primary_key=True)
    media_item_id = Column(Integer, ForeignKey("media_items.id", ondelete="CASCADE"), nullable=False)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="SET NULL"), nullable=True)

    language = Column(String, nullable=False)
    provider = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False)
    score = Column(Float, nullable=True)
