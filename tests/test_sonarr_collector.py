from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from countarr.clients import ApiResponse
from countarr.collectors import SonarrCollector
from countarr.models import DownloadEvent, Episode, MediaItem
from countarr.utils.dates import utcnow

from conftest import paged

GB = 1024 ** 3


def series(series_id=10, title="The Expanse"):
    return {
        "id": series_id,
        "title": title,
        "year": 2015,
        "tvdbId": 280619,
        "imdbId": "tt3230854",
        "network": "Syfy",
        "seriesType": "standard",
        "status": "ended",
        "runtime": 45,
        "added": "2023-05-01T12:00:00Z",
        "statistics": {"sizeOnDisk": 120 * GB, "seasonCount": 6, "episodeCount": 62},
        "images": [{"coverType": "poster", "remoteUrl": "http://images.local/expanse.jpg"}],
        "genres": ["Drama", "Science Fiction"],
    }


def episode(episode_id, season, number, has_file=True):
    return {
        "id": episode_id,
        "seasonNumber": season,
        "episodeNumber": number,
        "title": f"Episode {number}",
        "airDateUtc": "2015-12-14T03:00:00Z",
        "hasFile": has_file,
        "episodeFile": {"size": 2 * GB, "quality": {"quality": {"name": "WEBDL-1080p"}}} if has_file else None,
    }


def history_record(record_id, days_ago, size, episode_data, event_type="downloadFolderImported"):
    when = utcnow() - timedelta(days=days_ago)
    return {
        "id": record_id,
        "eventType": event_type,
        "date": when.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "sourceTitle": "The.Expanse.S01E01.1080p.WEB-DL.x264-NTb",
        "quality": {"quality": {"name": "WEBDL-1080p"}},
        "data": {"size": str(size)},
        "series": series(),
        "episode": episode_data,
    }


@pytest.fixture
def client():
    client = AsyncMock()
    client.get_series.return_value = ApiResponse(data=[series()], status=200)
    client.get_episodes.return_value = ApiResponse(
        data=[episode(101, 1, 1), episode(102, 1, 2, has_file=False)], status=200
    )
    return client


@pytest.fixture
def collector(make_connection, client, session_factory):
    connection = make_connection("sonarr", name="Sonarr")
    return SonarrCollector(connection, client=client, session_factory=session_factory, page_delay=0)


async def test_metadata_upserts_series_and_episodes(collector, client, session_factory):
    first = await collector.sync_metadata()
    second = await collector.sync_metadata()

    assert (first.added, first.updated) == (1, 0)
    assert (second.added, second.updated) == (0, 1)
    client.get_episodes.assert_awaited_with(10)

    db = session_factory()
    item = db.query(MediaItem).filter_by(source="sonarr", external_id=10).one()
    assert item.type == "series"
    assert item.tvdb_id == 280619
    assert item.size_bytes == 120 * GB
    assert item.metadata_dict["network"] == "Syfy"
    assert item.metadata_dict["episodeCount"] == 62

    episodes = db.query(Episode).order_by(Episode.episode).all()
    assert [(e.season, e.episode, e.has_file) for e in episodes] == [(1, 1, True), (1, 2, False)]
    assert episodes[0].quality == "WEBDL-1080p"
    db.close()


async def test_episode_fetch_error_keeps_series(collector, client, session_factory):
    client.get_episodes.return_value = ApiResponse(error="Request timeout")

    result = await collector.sync_metadata()

    assert result.added == 1
    assert result.errors == ["Failed to fetch episodes for The Expanse: Request timeout"]


async def test_episode_upgrade_detected(collector, client, session_factory):
    pilot = episode(101, 1, 1)
    client.get_history = paged([[
        history_record(2, days_ago=1, size=4 * GB, episode_data=pilot),
        history_record(1, days_ago=20, size=2 * GB, episode_data=pilot),
    ]])

    result = await collector.sync_history()

    assert result.errors == []
    db = session_factory()
    first, second = db.query(DownloadEvent).order_by(DownloadEvent.timestamp).all()
    assert first.episode_id is not None
    assert first.episode_id == second.episode_id
    assert not first.is_upgrade
    assert second.is_upgrade
    assert second.previous_size_bytes == 2 * GB
    db.close()


async def test_other_episode_is_not_an_upgrade(collector, client, session_factory):
    client.get_history = paged([[
        history_record(2, days_ago=1, size=4 * GB, episode_data=episode(102, 1, 2)),
        history_record(1, days_ago=20, size=2 * GB, episode_data=episode(101, 1, 1)),
    ]])

    await collector.sync_history()

    db = session_factory()
    assert db.query(DownloadEvent).filter_by(is_upgrade=True).count() == 0
    db.close()


async def test_history_rerun_is_idempotent(collector, client, session_factory):
    records = [
        history_record(2, days_ago=1, size=4 * GB, episode_data=episode(101, 1, 1)),
        history_record(1, days_ago=20, size=2 * GB, episode_data=episode(101, 1, 1)),
    ]
    client.get_history = paged([records])
    await collector.sync_history()
    client.get_history = paged([records])
    result = await collector.sync_history()

    assert result.errors == []
    db = session_factory()
    assert db.query(DownloadEvent).count() == 2
    db.close()


async def test_same_timestamp_different_episode_collapses(collector, client, session_factory):
    # Dedup key ignores the episode: a season pack import at one instant keeps one row
    when = utcnow() - timedelta(days=2)
    first = history_record(1, days_ago=2, size=GB, episode_data=episode(101, 1, 1))
    second = history_record(2, days_ago=2, size=GB, episode_data=episode(102, 1, 2))
    first["date"] = second["date"] = when.strftime("%Y-%m-%dT%H:%M:%SZ")
    client.get_history = paged([[second, first]])

    result = await collector.sync_history()

    assert result.errors == []
    db = session_factory()
    assert db.query(DownloadEvent).count() == 1
    db.close()
