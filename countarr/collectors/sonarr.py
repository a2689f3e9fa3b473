import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from countarr.collectors.base import BaseCollector, SyncResult
from countarr.collectors.radarr import RADARR_EVENT_TYPES, poster_url
from countarr.models import DownloadEvent, Episode, MediaItem, ServiceType
from countarr.utils.dates import parse_datetime
from countarr.utils.json_fields import dumps

logger = logging.getLogger(__name__)

SONARR_EVENT_TYPES = {
    **RADARR_EVENT_TYPES,
    "seriesDelete": "deleted",
    "episodeFileDeleted": "deleted",
    "episodeFileRenamed": "renamed",
}


def map_event_type(event_type: str) -> str:
    return SONARR_EVENT_TYPES.get(event_type, event_type)


class SonarrCollector(BaseCollector):
    service_type = ServiceType.SONARR

    async def sync_metadata(self) -> SyncResult:
        """Serien + Episoden aus Sonarr upserten"""
        result = SyncResult()

        response = await self.client.get_series()
        if response.error:
            result.errors.append(f"Failed to fetch series: {response.error}")
            return result

        all_series = response.data or []
        logger.info(f"🔄 [{self.name}] Syncing {len(all_series)} series")

        db = self.session_factory()
        try:
            for series in all_series:
                try:
                    item, created = self.upsert_series(db, series)
                    db.commit()
                    if created:
                        result.added += 1
                    else:
                        result.updated += 1
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to sync series {series.get('title')}: {e}")
                    continue

                episodes = await self.client.get_episodes(series["id"])
                if episodes.error:
                    result.errors.append(f"Failed to fetch episodes for {series.get('title')}: {episodes.error}")
                    continue
                try:
                    for episode in episodes.data or []:
                        self.upsert_episode(db, item.id, episode)
                    db.commit()
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to sync episodes for {series.get('title')}: {e}")
                await self.pause()
        finally:
            db.close()

        result.processed = result.added + result.updated
        logger.info(f"✓ [{self.name}] Series synced: {result.added} added, {result.updated} updated")
        return result

    async def sync_history(self, since: Optional[datetime] = None, import_months: int = 12) -> SyncResult:
        result = SyncResult()
        cutoff = self.cutoff_date(since, import_months)

        records, fetch_error = await self.fetch_history_window(
            lambda page: self.client.get_history(page, self.page_size), cutoff
        )
        if fetch_error:
            result.errors.append(f"Failed to fetch history: {fetch_error}")

        db = self.session_factory()
        try:
            for timestamp, record in records:
                try:
                    if self.process_history_record(db, record, timestamp):
                        result.processed += 1
                    else:
                        result.skipped += 1
                    db.commit()
                except IntegrityError:
                    # Gleicher Dedup-Key von einem parallelen Schreiber
                    db.rollback()
                    result.skipped += 1
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to process history record {record.get('id')}: {e}")
        finally:
            db.close()

        logger.info(f"✓ [{self.name}] Processed {result.processed} history records")
        return result

    def upsert_series(self, db: Session, series: dict) -> Tuple[MediaItem, bool]:
        external_id = series["id"]
        item = db.query(MediaItem).filter_by(source=self.service_type.value, external_id=external_id).first()
        created = item is None
        if created:
            item = MediaItem(source=self.service_type.value, external_id=external_id, type="series")
            db.add(item)

        statistics = series.get("statistics") or {}

        item.connection_id = self.connection.id
        item.title = series.get("title") or f"Series {external_id}"
        item.year = series.get("year")
        item.tmdb_id = None  # Sonarr arbeitet mit TVDB
        item.imdb_id = series.get("imdbId") or None
        item.tvdb_id = series.get("tvdbId")
        item.runtime_minutes = series.get("runtime")
        item.added_at = parse_datetime(series.get("added"))
        item.size_bytes = statistics.get("sizeOnDisk") or 0
        item.quality = None
        item.poster_url = poster_url(series.get("images"))
        item.genres = dumps(series.get("genres") or [])
        item.extra = dumps({
            "network": series.get("network"),
            "certification": series.get("certification"),
            "seriesType": series.get("seriesType"),
            "status": series.get("status"),
            "ended": series.get("ended"),
            "seasonCount": statistics.get("seasonCount") or 0,
            "episodeCount": statistics.get("episodeCount") or 0,
            "monitored": series.get("monitored"),
        })

        db.flush()
        return item, created

    def upsert_episode(self, db: Session, media_item_id: int, episode: dict) -> Episode:
        row = db.query(Episode).filter_by(
            media_item_id=media_item_id,
            season=episode["seasonNumber"],
            episode=episode["episodeNumber"],
        ).first()
        if row is None:
            row = Episode(
                media_item_id=media_item_id,
                season=episode["seasonNumber"],
                episode=episode["episodeNumber"],
            )
            db.add(row)

        episode_file = episode.get("episodeFile") or {}

        row.external_id = episode.get("id")
        row.title = episode.get("title")
        row.size_bytes = episode_file.get("size") or 0
        row.quality = ((episode_file.get("quality") or {}).get("quality") or {}).get("name")
        row.air_date = parse_datetime(episode.get("airDateUtc") or episode.get("airDate"))
        row.has_file = bool(episode.get("hasFile"))

        db.flush()
        return row

    def process_history_record(self, db: Session, record: dict, timestamp: datetime) -> bool:
        series = record.get("series")
        if not series:
            logger.warning(f"[{self.name}] History record {record.get('id')} has no series data")
            return False

        item, _ = self.upsert_series(db, series)

        episode_id = None
        if record.get("episode"):
            episode_id = self.upsert_episode(db, item.id, record["episode"]).id

        event_type = map_event_type(record.get("eventType") or "")

        existing = db.query(DownloadEvent.id).filter_by(
            source_app=self.service_type.value,
            media_item_id=item.id,
            timestamp=timestamp,
            event_type=event_type,
        ).first()
        if existing:
            return True

        values = self.download_event_values(record, timestamp, item.id, episode_id, event_type)
        self.mark_upgrade(db, values)

        db.add(DownloadEvent(**values))
        db.flush()
        return True
