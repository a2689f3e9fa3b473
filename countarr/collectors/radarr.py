import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from countarr.collectors.base import BaseCollector, SyncResult
from countarr.database import insert_ignore
from countarr.models import DownloadEvent, MediaItem, ServiceType
from countarr.utils.dates import parse_datetime
from countarr.utils.json_fields import dumps

logger = logging.getLogger(__name__)

RADARR_EVENT_TYPES = {
    "grabbed": "grabbed",
    "downloadFolderImported": "downloaded",
    "downloadFailed": "deleted",
    "movieFileDeleted": "deleted",
    "movieFileRenamed": "renamed",
    "downloadIgnored": "deleted",
}


def map_event_type(event_type: str) -> str:
    return RADARR_EVENT_TYPES.get(event_type, event_type)


def poster_url(images) -> Optional[str]:
    for image in images or []:
        if image.get("coverType") == "poster":
            return image.get("remoteUrl") or image.get("url")
    return None


class RadarrCollector(BaseCollector):
    service_type = ServiceType.RADARR

    async def sync_metadata(self) -> SyncResult:
        """Alle Filme aus Radarr upserten"""
        result = SyncResult()

        response = await self.client.get_movies()
        if response.error:
            result.errors.append(f"Failed to fetch movies: {response.error}")
            return result

        movies = response.data or []
        logger.info(f"🔄 [{self.name}] Syncing {len(movies)} movies")

        db = self.session_factory()
        try:
            for movie in movies:
                try:
                    _, created = self.upsert_movie(db, movie)
                    db.commit()
                    if created:
                        result.added += 1
                    else:
                        result.updated += 1
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to sync movie {movie.get('title')}: {e}")
        finally:
            db.close()

        result.processed = result.added + result.updated
        logger.info(f"✓ [{self.name}] Movies synced: {result.added} added, {result.updated} updated")
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
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to process history record {record.get('id')}: {e}")
        finally:
            db.close()

        logger.info(f"✓ [{self.name}] Processed {result.processed} history records")
        return result

    def upsert_movie(self, db: Session, movie: dict) -> Tuple[MediaItem, bool]:
        """Film anlegen oder überschreiben, gibt (item, created) zurück"""
        external_id = movie["id"]
        item = db.query(MediaItem).filter_by(source=self.service_type.value, external_id=external_id).first()
        created = item is None
        if created:
            item = MediaItem(source=self.service_type.value, external_id=external_id, type="movie")
            db.add(item)

        movie_file = movie.get("movieFile") or {}

        item.connection_id = self.connection.id
        item.title = movie.get("title") or f"Movie {external_id}"
        item.year = movie.get("year")
        item.tmdb_id = movie.get("tmdbId")
        item.imdb_id = movie.get("imdbId") or None
        item.tvdb_id = None
        item.runtime_minutes = movie.get("runtime")
        item.added_at = parse_datetime(movie.get("added"))
        item.size_bytes = movie.get("sizeOnDisk") or 0
        item.quality = ((movie_file.get("quality") or {}).get("quality") or {}).get("name")
        item.poster_url = poster_url(movie.get("images"))
        item.genres = dumps(movie.get("genres") or [])
        item.extra = dumps({
            "studio": movie.get("studio"),
            "certification": movie.get("certification"),
            "hasFile": movie.get("hasFile"),
            "monitored": movie.get("monitored"),
            "collection": movie.get("collection"),
            "releaseGroup": movie_file.get("releaseGroup"),
        })

        db.flush()
        return item, created

    def process_history_record(self, db: Session, record: dict, timestamp: datetime) -> bool:
        movie = record.get("movie")
        if not movie:
            logger.warning(f"[{self.name}] History record {record.get('id')} has no movie data")
            return False

        item, _ = self.upsert_movie(db, movie)

        values = self.download_event_values(
            record, timestamp, item.id, None, map_event_type(record.get("eventType") or "")
        )
        self.mark_upgrade(db, values)

        # Atomares INSERT ... ON CONFLICT DO NOTHING, Duplikate fallen still weg
        insert_ignore(db, DownloadEvent, values)
        return True
