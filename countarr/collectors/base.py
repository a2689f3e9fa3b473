"""
Gemeinsame Basis für alle Collector.

Ein Collector übersetzt die API eines Dienstes in Zeilen der normalisierten
Tabellen. Fehler pro Datensatz landen als String in SyncResult.errors und
brechen den Lauf nicht ab.
"""
import asyncio
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from countarr.clients import ApiResponse, create_client
from countarr.database import SessionLocal
from countarr.models import DownloadEvent, ServiceConnection, ServiceType
from countarr.utils.dates import months_ago, parse_datetime
from countarr.utils.json_fields import dumps
from countarr.utils.quality_parser import parse_quality, parse_release_group

logger = logging.getLogger(__name__)


class UnsupportedSyncError(Exception):
    """Collector does not implement the requested sync category"""


@dataclass
class SyncResult:
    processed: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


HistoryPage = Callable[[int], Awaitable[ApiResponse]]


class BaseCollector:
    service_type: ServiceType
    page_size = 100

    def __init__(
        self,
        connection: ServiceConnection,
        client=None,
        session_factory: Optional[Callable[[], Session]] = None,
        page_delay: float = 0.1,
    ):
        self.connection = connection
        self.client = client or create_client(connection.type, connection.url, connection.api_key)
        self.session_factory = session_factory or SessionLocal
        self.page_delay = page_delay

    @property
    def name(self) -> str:
        return f"{self.service_type.value}:{self.connection.name}"

    async def test_connection(self) -> Dict:
        return await self.client.test_connection()

    async def sync_history(self, since: Optional[datetime] = None, import_months: int = 12) -> SyncResult:
        raise UnsupportedSyncError(f"{self.service_type.value} has no history sync")

    async def sync_metadata(self) -> SyncResult:
        raise UnsupportedSyncError(f"{self.service_type.value} has no metadata sync")

    async def sync_stats(self) -> SyncResult:
        raise UnsupportedSyncError(f"{self.service_type.value} has no stats sync")

    async def sync_playback(self) -> SyncResult:
        raise UnsupportedSyncError(f"{self.service_type.value} has no playback sync")

    # --- helpers ---------------------------------------------------------

    @staticmethod
    def cutoff_date(since: Optional[datetime], import_months: int) -> datetime:
        return since if since else months_ago(import_months)

    async def pause(self, seconds: Optional[float] = None):
        delay = self.page_delay if seconds is None else seconds
        if delay:
            await asyncio.sleep(delay)

    async def fetch_history_window(self, fetch_page: HistoryPage,
                                   cutoff: datetime) -> Tuple[List[Tuple[datetime, dict]], Optional[str]]:
        """
        Walk a newest-first paginated history feed down to the cutoff.

        Stops on an empty page, a short page or the first record older than
        the cutoff. Returns the in-window records oldest-first plus the fetch
        error, if any page failed.
        """
        records: List[Tuple[datetime, dict]] = []
        page = 1

        while True:
            response = await fetch_page(page)
            if response.error:
                return self._oldest_first(records), response.error

            page_records = (response.data or {}).get("records") or []
            if not page_records:
                break

            reached_cutoff = False
            for record in page_records:
                timestamp = parse_datetime(record.get("date"))
                if timestamp is None:
                    logger.warning(f"[{self.name}] History record {record.get('id')} has no date, skipping")
                    continue
                if timestamp < cutoff:
                    reached_cutoff = True
                    break
                records.append((timestamp, record))

            if reached_cutoff or len(page_records) < self.page_size:
                break

            page += 1
            await self.pause()

        return self._oldest_first(records), None

    @staticmethod
    def _oldest_first(records):
        return sorted(records, key=lambda item: (item[0], item[1].get("id") or 0))

    def download_event_values(self, record: dict, timestamp: datetime, media_item_id: int,
                              episode_id: Optional[int], event_type: str) -> dict:
        """Normalized DownloadEvent columns from an *arr history record"""
        data = record.get("data") or {}
        source_title = record.get("sourceTitle") or ""
        parsed = parse_quality(source_title)

        try:
            size_bytes = int(data.get("size") or 0)
        except (TypeError, ValueError):
            size_bytes = 0

        quality = ((record.get("quality") or {}).get("quality") or {}).get("name")

        return {
            "media_item_id": media_item_id,
            "episode_id": episode_id,
            "event_type": event_type,
            "timestamp": timestamp,
            "size_bytes": size_bytes,
            "quality": quality,
            "resolution": parsed.resolution,
            "quality_source": parsed.source,
            "video_codec": parsed.video_codec,
            "audio_codec": parsed.audio_codec,
            "release_group": parse_release_group(source_title) or data.get("releaseGroup"),
            "release_title": source_title or None,
            "indexer": data.get("indexer"),
            "download_client": data.get("downloadClient") or data.get("downloadClientName"),
            "source_app": self.service_type.value,
            "quality_score": parsed.quality_score,
            "is_upgrade": False,
            "previous_size_bytes": None,
            "raw_data": dumps(record),
        }

    def previous_download(self, db: Session, before: datetime, media_item_id: int,
                          episode_id: Optional[int] = None) -> Optional[DownloadEvent]:
        """Latest earlier "downloaded" event for the same media item (or episode)"""
        query = db.query(DownloadEvent).filter(
            DownloadEvent.source_app == self.service_type.value,
            DownloadEvent.event_type == "downloaded",
            DownloadEvent.timestamp < before,
        )
        if episode_id is not None:
            query = query.filter(DownloadEvent.episode_id == episode_id)
        else:
            query = query.filter(DownloadEvent.media_item_id == media_item_id)
        return query.order_by(DownloadEvent.timestamp.desc()).first()

    def mark_upgrade(self, db: Session, values: dict):
        """Upgrade-Erkennung: vorheriger Download vorhanden => Upgrade"""
        if values["event_type"] != "downloaded":
            return
        previous = self.previous_download(db, values["timestamp"], values["media_item_id"], values["episode_id"])
        if previous:
            values["is_upgrade"] = True
            values["previous_size_bytes"] = previous.size_bytes
