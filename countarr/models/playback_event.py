from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey

from countarr.database import Base
from countarr.utils.dates import utcnow


class PlaybackEvent(Base):
    __tablename__ = "playback_events"

    id = Column(Integer, primary_key=True)
    media_item_id = Column(Integer, ForeignKey("media_items.id", ondelete="CASCADE"), nullable=False, index=True)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="SET NULL"), nullable=True)
    connection_id = Column(Integer, ForeignKey("service_connections.id", ondelete="SET NULL"), nullable=True)

    # "activity-<id>" für Activity-Log, Session-Id für laufende Sessions
    external_id = Column(String, nullable=True, index=True)
    user_id = Column(String, nullable=True)
    user_name = Column(String, nullable=True)

    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    play_duration_seconds = Column(Integer, default=0)
    completed = Column(Boolean, default=False)
    play_method = Column(String, nullable=True)
    source_app = Column(String, nullable=False)

    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<PlaybackEvent {self.source_app} {self.external_id} {self.play_duration_seconds}s>"
