import logging

from countarr.database import SessionLocal
from countarr.models import Setting
from countarr.services.settings import DEFAULT_SETTINGS


logger = logging.getLogger(__name__)


def init_config(session_factory=SessionLocal):
    """Initialize default settings"""
    db = session_factory()
    try:
        for key, (value, data_type, description) in DEFAULT_SETTINGS.items():
            existing = db.query(Setting).filter_by(key=key).first()
            if not existing:
                db.add(Setting(
                    key=key,
                    value=str(value),
                    data_type=data_type,
                    description=description
                ))
                logger.info(f"✓ Added config: {key}")

        db.commit()
    finally:
        db.close()
    logger.info("✅ Base config initialized")
