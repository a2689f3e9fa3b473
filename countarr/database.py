from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.dialects import postgresql, sqlite
import logging
import time

from countarr.config import DATABASE_URL, DATA_DIR


logger = logging.getLogger(__name__)


def create_db_engine(url: str):
    """Engine für SQLite (eine geteilte Verbindung) oder PostgreSQL"""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True, pool_recycle=3600)


engine = create_db_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ZENTRALE Base Definition - alle Models importieren diese
Base = declarative_base()


def import_models():
    """Register all models on Base.metadata (needed before create_all)"""
    import countarr.models  # noqa: F401


def ensure_database_exists():
    """Stellt sicher dass die Datenbank existiert (nur falls nötig)"""
    if DATABASE_URL.startswith("sqlite"):
        if ":memory:" not in DATABASE_URL:
            DATA_DIR.mkdir(parents=True, exist_ok=True)
        return

    try:
        with engine.connect():
            logger.info("✓ Database connection successful")
            return
    except (OperationalError, ProgrammingError) as e:
        if "does not exist" not in str(e):
            raise

        logger.info("Database does not exist, creating it...")
        from sqlalchemy.engine.url import make_url
        url = make_url(DATABASE_URL)

        admin_engine = create_engine(
            url.set(database="postgres"),
            isolation_level="AUTOCOMMIT"
        )
        try:
            with admin_engine.connect() as conn:
                conn.execute(text(f'CREATE DATABASE "{url.database}"'))
                logger.info(f"✓ Database {url.database} created successfully")
        finally:
            admin_engine.dispose()


def init_db(attempts: int = 30):
    """Erstellt Datenbank und alle Tabellen"""
    import_models()

    for attempt in range(attempts):
        try:
            ensure_database_exists()
            Base.metadata.create_all(bind=engine)
            logger.info("✓ All database tables initialized")
            return
        except OperationalError as e:
            if attempt < attempts - 1:
                logger.info(f"Database not ready (attempt {attempt + 1}/{attempts}), retrying...")
                time.sleep(1)
            else:
                logger.error(f"Database initialization failed after {attempts} attempts: {e}")
                raise


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def insert_ignore(db, model, values: dict):
    """
    INSERT ... ON CONFLICT DO NOTHING for the session's dialect.

    Returns True when a row was written, False when a unique constraint
    swallowed it.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing()
    else:
        raise ValueError(f"insert_ignore not supported for dialect {dialect}")

    result = db.execute(stmt)
    return result.rowcount > 0
