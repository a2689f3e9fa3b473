from sqlalchemy import Column, Integer, String, DateTime, Text
import json

from countarr.database import Base
from countarr.utils.dates import utcnow


class Setting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, nullable=False)
    value = Column(Text)
    data_type = Column(String, default="string")  # string, int, bool, json
    description = Column(String, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Setting {self.key}={(self.value or '')[:20]}>"

    @property
    def typed_value(self):
        """Gibt value als korrekten Typ zurück"""
        if self.data_type == "bool":
            return (self.value or "").lower() in ("true", "1", "yes")
        elif self.data_type == "int":
            return int(self.value)
        elif self.data_type == "json":
            return json.loads(self.value)
        return self.value
