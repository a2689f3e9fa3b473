import logging
import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from countarr.collectors.base import BaseCollector, SyncResult
from countarr.models import Episode, MediaItem, ServiceType, SubtitleEvent
from countarr.utils.dates import utcnow

logger = logging.getLogger(__name__)

# Bazarr action codes: 1 = downloaded, 2 = erased, 3 = upgraded, 5 = sync
RELEVANT_ACTIONS = {1, 3}
HISTORY_LENGTH = 500

TIMESTAMP_RE = re.compile(r"(\d{2})/(\d{2})/(\d{2}) (\d{2}):(\d{2}):(\d{2})")
SCORE_RE = re.compile(r"([\d.]+)%")


def parse_bazarr_timestamp(value: Optional[str]) -> datetime:
    """
    "01/07/26 11:42:58" (MM/DD/YY) -> naive UTC, unparseable -> now.

    Bazarr rendert die Zeit in der lokalen Zeitzone des Servers; sie wird
    als Ortszeit gelesen und nach UTC umgerechnet.
    """
    match = TIMESTAMP_RE.search(value or "")
    if not match:
        return utcnow().replace(microsecond=0)

    month, day, year, hour, minute, second = (int(part) for part in match.groups())
    full_year = 2000 + year if year < 50 else 1900 + year
    try:
        local = datetime(full_year, month, day, hour, minute, second)
    except ValueError:
        return utcnow().replace(microsecond=0)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def record_timestamp(record: dict) -> datetime:
    """Epoch-Feld bevorzugen, sonst parsed_timestamp"""
    epoch = record.get("timestamp")
    if isinstance(epoch, (int, float)) and not isinstance(epoch, bool):
        return datetime.fromtimestamp(epoch, tz=timezone.utc).replace(tzinfo=None)
    return parse_bazarr_timestamp(record.get("parsed_timestamp"))


def parse_score(value: Optional[str]) -> Optional[float]:
    """"95.0%" -> 95.0"""
    if not value:
        return None
    match = SCORE_RE.search(value)
    return float(match.group(1)) if match else None


class BazarrCollector(BaseCollector):
    service_type = ServiceType.BAZARR

    async def sync_history(self, since: Optional[datetime] = None, import_months: int = 12) -> SyncResult:
        """
        Untertitel-Historie für Filme und Episoden.

        `since` wird ignoriert: es gilt immer das Import-Fenster, die Dedup
        über (Medium, Sprache, Zeitstempel) hält Wiederholungen idempotent.
        """
        result = SyncResult()
        cutoff = self.cutoff_date(None, import_months)

        movie_history = await self.client.get_movie_history(0, HISTORY_LENGTH)
        if movie_history.error:
            result.errors.append(f"Failed to fetch movie subtitle history: {movie_history.error}")

        series_history = await self.client.get_series_history(0, HISTORY_LENGTH)
        if series_history.error:
            result.errors.append(f"Failed to fetch series subtitle history: {series_history.error}")

        db = self.session_factory()
        try:
            for record in (movie_history.data or {}).get("data") or []:
                self._process(db, result, record, cutoff, self.process_movie_subtitle, record.get("title"))
            for record in (series_history.data or {}).get("data") or []:
                self._process(db, result, record, cutoff, self.process_series_subtitle, record.get("seriesTitle"))
        finally:
            db.close()

        logger.info(f"✓ [{self.name}] Processed {result.processed} subtitle events")
        return result

    def _process(self, db: Session, result: SyncResult, record: dict, cutoff: datetime, handler, title):
        if record.get("action") not in RELEVANT_ACTIONS:
            return
        timestamp = record_timestamp(record)
        if timestamp < cutoff:
            return

        try:
            if handler(db, record, timestamp):
                result.processed += 1
            else:
                result.skipped += 1
            db.commit()
        except Exception as e:
            db.rollback()
            result.errors.append(f"Failed to process subtitle for {title}: {e}")

    def process_movie_subtitle(self, db: Session, record: dict, timestamp: datetime) -> bool:
        if not record.get("radarrId"):
            return False

        item = db.query(MediaItem).filter_by(source=ServiceType.RADARR.value,
                                             external_id=record["radarrId"]).first()
        if not item:
            # Film noch nicht synchronisiert
            return False

        self._insert_subtitle(db, record, timestamp, item.id, None)
        return True

    def process_series_subtitle(self, db: Session, record: dict, timestamp: datetime) -> bool:
        if not record.get("sonarrSeriesId") or not record.get("sonarrEpisodeId"):
            return False

        item = db.query(MediaItem).filter_by(source=ServiceType.SONARR.value,
                                             external_id=record["sonarrSeriesId"]).first()
        if not item:
            return False

        episode = db.query(Episode).filter_by(media_item_id=item.id,
                                              external_id=record["sonarrEpisodeId"]).first()

        self._insert_subtitle(db, record, timestamp, item.id, episode.id if episode else None)
        return True

    def _insert_subtitle(self, db: Session, record: dict, timestamp: datetime,
                         media_item_id: int, episode_id: Optional[int]):
        language = record.get("language") or {}
        language_code = language.get("code2") or language.get("name") or "unknown"

        existing = db.query(SubtitleEvent.id).filter_by(
            media_item_id=media_item_id,
            language=language_code,
            timestamp=timestamp,
        ).first()
        if existing:
            return

        db.add(SubtitleEvent(
            media_item_id=media_item_id,
            episode_id=episode_id,
            language=language_code,
            provider=record.get("provider") or "unknown",
            timestamp=timestamp,
            score=parse_score(record.get("score")),
        ))
        db.flush()
