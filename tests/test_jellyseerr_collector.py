from unittest.mock import AsyncMock

import pytest

from countarr.clients import ApiResponse
from countarr.collectors import JellyseerrCollector
from countarr.collectors.jellyseerr import map_request_status
from countarr.models import MediaItem, Request


def request(request_id, status=2, tmdb_id=949, media_type="movie"):
    return {
        "id": request_id,
        "status": status,
        "type": media_type,
        "createdAt": "2024-03-01T10:00:00.000Z",
        "updatedAt": "2024-03-02T18:30:00.000Z",
        "requestedBy": {"displayName": "alice", "email": "alice@example.com"},
        "media": {"tmdbId": tmdb_id} if tmdb_id else {},
    }


def page(results, pages=1):
    return ApiResponse(data={"pageInfo": {"pages": pages, "results": len(results)}, "results": results}, status=200)


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def collector(make_connection, client, session_factory):
    connection = make_connection("jellyseerr", name="Jellyseerr")
    return JellyseerrCollector(connection, client=client, session_factory=session_factory, page_delay=0)


def requests(session_factory):
    db = session_factory()
    try:
        return db.query(Request).order_by(Request.external_id).all()
    finally:
        db.close()


async def test_requests_linked_to_library(collector, client, session_factory):
    db = session_factory()
    db.add(MediaItem(source="radarr", external_id=1, type="movie", title="Heat", tmdb_id=949))
    db.commit()
    db.close()
    client.get_requests.return_value = page([
        request(1),
        request(2, status=1, tmdb_id=1234, media_type="tv"),
        request(3, status=5, tmdb_id=None),
    ])

    result = await collector.sync_history()

    assert (result.processed, result.added) == (3, 3)
    heat, unknown, bare = requests(session_factory)
    assert heat.title == "Heat"
    assert heat.media_item_id is not None
    assert heat.type == "movie"
    assert heat.status == "approved"
    assert heat.requested_by == "alice"
    assert heat.approved_at is not None
    assert heat.available_at is None
    assert unknown.title == "TMDB:1234"
    assert unknown.type == "series"
    assert unknown.status == "pending"
    assert unknown.approved_at is None
    assert bare.title == "Request 3"
    assert bare.status == "available"
    assert bare.available_at is not None


async def test_status_updated_on_rerun(collector, client, session_factory):
    client.get_requests.return_value = page([request(1, status=1)])
    await collector.sync_history()
    client.get_requests.return_value = page([request(1, status=4)])
    result = await collector.sync_history()

    assert (result.added, result.updated) == (0, 1)
    [row] = requests(session_factory)
    assert row.status == "available"


async def test_paginates_until_last_page(collector, client, session_factory):
    collector.page_size = 2
    client.get_requests.side_effect = [
        page([request(1), request(2)], pages=2),
        page([request(3), request(4)], pages=2),
    ]

    result = await collector.sync_history()

    assert result.processed == 4
    assert client.get_requests.await_count == 2


async def test_fetch_error(collector, client):
    client.get_requests.return_value = ApiResponse(error="Request timeout")

    result = await collector.sync_history()

    assert result.errors == ["Failed to fetch requests: Request timeout"]


def test_status_mapping():
    assert map_request_status(1) == "pending"
    assert map_request_status(2) == "approved"
    assert map_request_status(3) == "declined"
    assert map_request_status(4) == "available"
    assert map_request_status(5) == "available"
    assert map_request_status(None) == "pending"
