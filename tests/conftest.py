"""Shared fixtures: in-memory database per test, connection factory, mocked clients."""
import os
import tempfile

# Before any countarr import: keep data and logs out of the working tree
os.environ.setdefault("COUNTARR_DATA_DIR", tempfile.mkdtemp(prefix="countarr-test-"))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.orm import sessionmaker

from countarr.clients import ApiResponse
from countarr.database import Base, create_db_engine, import_models
from countarr.models import ServiceConnection, ServiceType


@pytest.fixture
def engine():
    import_models()
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_connection(session_factory):
    """Persist a ServiceConnection and return it detached"""
    def _make(service_type, name=None, url="http://localhost:1234", api_key="secret-api-key", enabled=True):
        service_type = ServiceType(service_type)
        session = session_factory()
        try:
            connection = ServiceConnection(
                name=name or service_type.value.capitalize(),
                type=service_type.value,
                url=url,
                api_key=api_key,
                enabled=enabled,
                is_default=True,
            )
            session.add(connection)
            session.commit()
            session.refresh(connection)
            session.expunge(connection)
            return connection
        finally:
            session.close()

    return _make


def paged(pages):
    """AsyncMock side effect serving one ApiResponse per requested page (1-based)"""
    async def fetch(page, *args, **kwargs):
        if page - 1 < len(pages):
            return ApiResponse(data={"records": pages[page - 1]}, status=200)
        return ApiResponse(data={"records": []}, status=200)

    return AsyncMock(side_effect=fetch)
