"""
Playback-Tracking für Emby und Jellyfin.

Zwei Quellen:
- /Sessions: laufende Wiedergaben, werden bei jedem Poll aktualisiert
- Activity Log: playback.start/playback.stop Paare ergeben die echte Dauer

Wiedergaben werden nur gespeichert, wenn sie einem bekannten MediaItem
zugeordnet werden können (exakter Titel oder Provider-ID, kein Fuzzy-Match).
"""
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from countarr.collectors.base import BaseCollector, SyncResult
from countarr.models import Episode, MediaItem, PlaybackEvent, ServiceType
from countarr.utils.dates import months_ago, parse_datetime, utcnow

logger = logging.getLogger(__name__)

MIN_PLAYBACK_SECONDS = 60
ACTIVITY_LOOKBACK_MONTHS = 6
ACTIVITY_BATCH_SIZE = 500
ACTIVITY_BATCH_DELAY = 0.05
TICKS_PER_SECOND = 10_000_000

FINISHED_PLAYING_RE = re.compile(r"has finished playing (.+?) on .+$")
YEAR_SUFFIX_RE = re.compile(r"^(.+?)\s*\(\d{4}\)$")
EPISODE_MARKER_RE = re.compile(r"\bS(\d+),?\s*E(?:p)?\s*(\d+)", re.IGNORECASE)


def display_title(entry_name: str) -> str:
    """"alice has finished playing Heat (1995) on Living Room" -> "Heat (1995)" """
    match = FINISHED_PLAYING_RE.search(entry_name or "")
    return match.group(1) if match else (entry_name or "")


def title_candidates(title: str) -> Tuple[str, str]:
    """(title with year, title without year); series part before " - S" only"""
    search_title = title.split(" - S")[0].strip()
    match = YEAR_SUFFIX_RE.match(search_title)
    without_year = match.group(1).strip() if match else search_title
    return search_title, without_year


def episode_marker(title: str) -> Optional[Tuple[int, int]]:
    """"Show - S1, Ep2 - Pilot" -> (1, 2)"""
    match = EPISODE_MARKER_RE.search(title or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def pair_playback_entries(entries: List[dict]) -> List[Tuple[dict, Optional[dict], int]]:
    """
    Pair playback.start / playback.stop by "userId-itemId".

    Returns (stop_entry, start_entry or None, duration_seconds) for every
    stop, in chronological order. A stop without start has duration 0.
    """
    playback = []
    for entry in entries:
        if entry.get("Type") not in ("playback.start", "playback.stop"):
            continue
        if not entry.get("UserId") or not entry.get("ItemId"):
            continue
        when = parse_datetime(entry.get("Date"))
        if when is None:
            continue
        playback.append((when, entry))

    playback.sort(key=lambda item: item[0])

    pending: Dict[str, Tuple[datetime, dict]] = {}
    pairs = []
    for when, entry in playback:
        key = f"{entry['UserId']}-{entry['ItemId']}"
        if entry["Type"] == "playback.start":
            pending[key] = (when, entry)
            continue

        start = pending.pop(key, None)
        if start:
            duration = int((when - start[0]).total_seconds())
            pairs.append((entry, start[1], duration))
        else:
            pairs.append((entry, None, 0))
    return pairs


class EmbyCollector(BaseCollector):
    service_type = ServiceType.EMBY

    def __init__(self, connection, client=None, session_factory=None, page_delay: float = ACTIVITY_BATCH_DELAY,
                 is_jellyfin: Optional[bool] = None):
        super().__init__(connection, client=client, session_factory=session_factory, page_delay=page_delay)
        if is_jellyfin is None:
            is_jellyfin = connection.type == ServiceType.JELLYFIN.value
        self.is_jellyfin = is_jellyfin
        self.service_type = ServiceType.JELLYFIN if is_jellyfin else ServiceType.EMBY
        self._user_names: Dict[str, str] = {}

    async def sync_playback(self) -> SyncResult:
        """Laufende Sessions + abgeschlossene Wiedergaben aus dem Activity Log"""
        sessions = await self.sync_sessions()
        played = await self.sync_played_items()

        return SyncResult(
            processed=sessions.processed + played.processed,
            added=sessions.added + played.added,
            updated=sessions.updated,
            skipped=sessions.skipped + played.skipped,
            errors=sessions.errors + played.errors,
        )

    # --- Activity Log ----------------------------------------------------

    async def fetch_activity(self, since: datetime) -> Tuple[List[dict], Optional[str]]:
        entries: List[dict] = []
        start_index = 0
        min_date = since.isoformat() + "Z"

        while True:
            response = await self.client.get_activity_log(start_index, ACTIVITY_BATCH_SIZE, min_date)
            if response.error:
                return entries, response.error

            data = response.data or {}
            items = data.get("Items") or []
            if not items:
                break
            entries.extend(items)

            total = data.get("TotalRecordCount") or 0
            if len(items) < ACTIVITY_BATCH_SIZE or start_index + ACTIVITY_BATCH_SIZE >= total:
                break
            start_index += ACTIVITY_BATCH_SIZE
            await self.pause()

        return entries, None

    async def sync_played_items(self) -> SyncResult:
        result = SyncResult()
        since = months_ago(ACTIVITY_LOOKBACK_MONTHS)

        entries, fetch_error = await self.fetch_activity(since)
        if fetch_error:
            result.errors.append(f"Failed to fetch activity log: {fetch_error}")
        logger.info(f"🔄 [{self.name}] Fetched {len(entries)} activity entries since {since.date()}")

        db = self.session_factory()
        try:
            for stop, start, duration in pair_playback_entries(entries):
                if duration < MIN_PLAYBACK_SECONDS:
                    result.skipped += 1
                    continue

                try:
                    if await self.process_activity_entry(db, stop, start, duration):
                        result.added += 1
                    result.processed += 1
                    db.commit()
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to process activity {stop.get('Id')}: {e}")
        finally:
            db.close()

        logger.info(
            f"✓ [{self.name}] Processed {result.processed} plays, added {result.added}, "
            f"skipped {result.skipped} (< {MIN_PLAYBACK_SECONDS}s)"
        )
        return result

    async def process_activity_entry(self, db: Session, stop: dict, start: Optional[dict], duration: int) -> bool:
        """Returns True when a new PlaybackEvent was written"""
        external_id = f"activity-{stop.get('Id')}"
        existing = db.query(PlaybackEvent.id).filter_by(
            source_app=self.service_type.value,
            external_id=external_id,
        ).first()
        if existing:
            return False

        title = display_title(stop.get("Name"))
        media_item = self.find_by_title(db, title)
        if media_item is None:
            media_item = await self.find_by_item_id(db, stop["ItemId"])
        if media_item is None:
            logger.debug(f"[{self.name}] No media item for '{title}', dropping play")
            return False

        episode_id = None
        marker = episode_marker(title)
        if marker and media_item.type == "series":
            episode = self.find_episode(db, media_item.id, *marker)
            episode_id = episode.id if episode else None

        ended_at = parse_datetime(stop.get("Date"))
        started_at = parse_datetime(start.get("Date")) if start else ended_at

        db.add(PlaybackEvent(
            media_item_id=media_item.id,
            episode_id=episode_id,
            connection_id=self.connection.id,
            external_id=external_id,
            user_id=stop.get("UserId"),
            user_name=await self.get_user_name(stop["UserId"]),
            started_at=started_at,
            ended_at=ended_at,
            play_duration_seconds=duration,
            completed=True,
            play_method=None,
            source_app=self.service_type.value,
        ))
        db.flush()
        return True

    async def get_user_name(self, user_id: str) -> str:
        if user_id in self._user_names:
            return self._user_names[user_id]

        response = await self.client.get_user(user_id)
        name = (response.data or {}).get("Name") if not response.error else None
        if name:
            self._user_names[user_id] = name
            return name
        return "Unknown"

    # --- Sessions --------------------------------------------------------

    async def sync_sessions(self) -> SyncResult:
        result = SyncResult()

        response = await self.client.get_sessions()
        if response.error:
            result.errors.append(f"Failed to fetch sessions: {response.error}")
            return result

        active = set()
        db = self.session_factory()
        try:
            for session in response.data or []:
                if not session.get("NowPlayingItem") or not session.get("PlayState"):
                    continue
                try:
                    outcome = self.process_active_session(db, session)
                    db.commit()
                    if outcome is None:
                        result.skipped += 1
                        continue
                    event, created = outcome
                    active.add(event.id)
                    result.processed += 1
                    if created:
                        result.added += 1
                    else:
                        result.updated += 1
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to process session {session.get('Id')}: {e}")

            closed = self.close_ended_sessions(db, active)
            db.commit()
            if closed:
                logger.debug(f"[{self.name}] Closed {closed} ended sessions")
        finally:
            db.close()

        return result

    def process_active_session(self, db: Session, session: dict):
        """Returns (PlaybackEvent, created) or None when the item is unknown"""
        item = session["NowPlayingItem"]
        play_state = session["PlayState"]

        media_item = self.find_media_item(db, item)
        if media_item is None:
            return None

        episode_id = None
        if item.get("Type") == "Episode" and item.get("ParentIndexNumber") and item.get("IndexNumber"):
            episode = self.find_episode(db, media_item.id, item["ParentIndexNumber"], item["IndexNumber"])
            episode_id = episode.id if episode else None

        position_seconds = int((play_state.get("PositionTicks") or 0) // TICKS_PER_SECOND)

        event = db.query(PlaybackEvent).filter_by(
            media_item_id=media_item.id,
            source_app=self.service_type.value,
            external_id=session["Id"],
            ended_at=None,
        ).first()
        if event:
            event.play_duration_seconds = position_seconds
            event.play_method = play_state.get("PlayMethod")
            db.flush()
            return event, False

        event = PlaybackEvent(
            media_item_id=media_item.id,
            episode_id=episode_id,
            connection_id=self.connection.id,
            external_id=session["Id"],
            user_id=session.get("UserId"),
            user_name=session.get("UserName"),
            started_at=utcnow(),
            ended_at=None,
            play_duration_seconds=position_seconds,
            completed=False,
            play_method=play_state.get("PlayMethod"),
            source_app=self.service_type.value,
        )
        db.add(event)
        db.flush()
        return event, True

    def close_ended_sessions(self, db: Session, active_ids) -> int:
        """Offene Session-Zeilen, die nicht mehr gemeldet werden, abschließen"""
        query = db.query(PlaybackEvent).filter(
            PlaybackEvent.source_app == self.service_type.value,
            PlaybackEvent.connection_id == self.connection.id,
            PlaybackEvent.ended_at.is_(None),
        )
        if active_ids:
            query = query.filter(PlaybackEvent.id.notin_(list(active_ids)))

        now = utcnow()
        closed = 0
        for event in query.all():
            event.ended_at = now
            closed += 1
        return closed

    # --- Matching ----------------------------------------------------------

    @staticmethod
    def _by_title(db: Session, source: str, title: str) -> Optional[MediaItem]:
        return db.query(MediaItem).filter(
            MediaItem.source == source,
            func.lower(MediaItem.title) == title.lower(),
        ).first()

    def find_by_title(self, db: Session, title: str) -> Optional[MediaItem]:
        """Radarr zuerst (mit/ohne Jahr), dann Sonarr"""
        with_year, without_year = title_candidates(title)
        for source in (ServiceType.RADARR.value, ServiceType.SONARR.value):
            for candidate in (with_year, without_year):
                match = self._by_title(db, source, candidate)
                if match:
                    return match
        return None

    async def find_by_item_id(self, db: Session, item_id: str) -> Optional[MediaItem]:
        response = await self.client.get_item(item_id)
        if response.error or not response.data:
            return None
        return self.find_media_item(db, response.data)

    def find_media_item(self, db: Session, item: dict) -> Optional[MediaItem]:
        provider_ids = item.get("ProviderIds") or {}

        if item.get("Type") == "Episode":
            tvdb = _int_or_none(provider_ids.get("Tvdb"))
            if tvdb:
                match = db.query(MediaItem).filter_by(tvdb_id=tvdb).first()
                if match:
                    return match
            if item.get("SeriesName"):
                match = self._by_title(db, ServiceType.SONARR.value, item["SeriesName"])
                if match:
                    return match

        tmdb = _int_or_none(provider_ids.get("Tmdb"))
        if tmdb:
            match = db.query(MediaItem).filter_by(tmdb_id=tmdb).first()
            if match:
                return match

        if provider_ids.get("Imdb"):
            match = db.query(MediaItem).filter_by(imdb_id=provider_ids["Imdb"]).first()
            if match:
                return match

        if item.get("Type") == "Series":
            tvdb = _int_or_none(provider_ids.get("Tvdb"))
            if tvdb:
                match = db.query(MediaItem).filter_by(source=ServiceType.SONARR.value, tvdb_id=tvdb).first()
                if match:
                    return match

        if item.get("Type") == "Movie" and item.get("Name"):
            return self._by_title(db, ServiceType.RADARR.value, item["Name"])
        return None

    @staticmethod
    def find_episode(db: Session, media_item_id: int, season: int, episode: int) -> Optional[Episode]:
        return db.query(Episode).filter_by(media_item_id=media_item_id, season=season, episode=episode).first()


def _int_or_none(value) -> Optional[int]:
    try:
        return int(value) if value else None
    except (TypeError, ValueError):
        return None
