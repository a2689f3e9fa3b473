from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text

from countarr.database import Base
from countarr.utils.dates import utcnow


class ServiceType(str, Enum):
    RADARR = "radarr"
    SONARR = "sonarr"
    BAZARR = "bazarr"
    PROWLARR = "prowlarr"
    JELLYSEERR = "jellyseerr"
    EMBY = "emby"
    JELLYFIN = "jellyfin"


class ServiceConnection(Base):
    __tablename__ = "service_connections"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, index=True)  # ServiceType value
    url = Column(String, nullable=False)
    api_key = Column(Text, nullable=False)

    enabled = Column(Boolean, default=True, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)

    last_test_at = Column(DateTime, nullable=True)
    last_test_success = Column(Boolean, nullable=True)
    last_test_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def service_type(self) -> ServiceType:
        return ServiceType(self.type)

    def __repr__(self):
        return f"<ServiceConnection {self.type}:{self.name}>"
