from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from countarr.database import Base


class Request(Base):
    """Media request from Jellyseerr"""
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True)
    external_id = Column(Integer, unique=True, nullable=False)
    media_item_id = Column(Integer, ForeignKey("media_items.id", ondelete="SET NULL"), nullable=True)

    type = Column(String, nullable=False)  # "movie", "series"
    title = Column(String, nullable=False)
    requested_by = Column(String, nullable=True)
    requested_at = Column(DateTime, nullable=True)
    status = Column(String, default="pending")  # pending, approved, declined, available
    approved_at = Column(DateTime, nullable=True)
    available_at = Column(DateTime, nullable=True)
    source_app = Column(String, default="jellyseerr")
