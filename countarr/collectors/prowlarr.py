import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from countarr.collectors.base import BaseCollector, SyncResult
from countarr.models import IndexerStat, ServiceType, SyncState
from countarr.utils.dates import utcnow

logger = logging.getLogger(__name__)


class ProwlarrCollector(BaseCollector):
    """
    Indexer-Statistiken als Tageswerte.

    sync_stats ersetzt die heutigen Zähler aus /indexerstats, sync_history
    zählt einzelne Grabs aus der History hoch. Beide schreiben dieselben
    IndexerStat-Zeilen (indexer_name, date).
    """
    service_type = ServiceType.PROWLARR

    async def sync_stats(self) -> SyncResult:
        result = SyncResult()

        response = await self.client.get_indexer_stats()
        if response.error:
            result.errors.append(f"Failed to fetch indexer stats: {response.error}")
            return result

        today = utcnow().date()
        indexers = (response.data or {}).get("indexers") or []

        db = self.session_factory()
        try:
            for stats in indexers:
                try:
                    self.replace_daily_stats(db, stats, today)
                    db.commit()
                    result.processed += 1
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to sync stats for {stats.get('indexerName')}: {e}")
        finally:
            db.close()

        logger.info(f"✓ [{self.name}] Synced stats for {result.processed} indexers")
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
            state = self._sync_state(db)
            for timestamp, record in records:
                # Nur Grabs zählen für die Indexer-Nutzung
                if record.get("eventType") != "releaseGrabbed":
                    continue
                record_id = record.get("id") or 0
                if state.last_history_id is not None and record_id <= state.last_history_id:
                    result.skipped += 1
                    continue

                try:
                    self.count_grab(db, record, timestamp.date())
                    state.last_history_id = record_id
                    db.commit()
                    result.processed += 1
                except Exception as e:
                    db.rollback()
                    result.errors.append(f"Failed to process grab event {record_id}: {e}")
        finally:
            db.close()

        logger.info(f"✓ [{self.name}] Processed {result.processed} grab events")
        return result

    def _sync_state(self, db: Session) -> SyncState:
        state = db.query(SyncState).filter_by(connection_id=self.connection.id).first()
        if state is None:
            state = SyncState(connection_id=self.connection.id, status="idle")
            db.add(state)
            db.commit()
        return state

    def _daily_row(self, db: Session, indexer_name: str, day: date) -> IndexerStat:
        row = db.query(IndexerStat).filter_by(indexer_name=indexer_name, date=day).first()
        if row is None:
            row = IndexerStat(indexer_name=indexer_name, date=day, searches=0, grabs=0, failed_grabs=0)
            db.add(row)
        return row

    def replace_daily_stats(self, db: Session, stats: dict, day: date) -> IndexerStat:
        row = self._daily_row(db, stats.get("indexerName") or "Unknown", day)

        row.searches = (stats.get("numberOfQueries") or 0) + (stats.get("numberOfRssQueries") or 0)
        row.grabs = stats.get("numberOfGrabs") or 0
        row.failed_grabs = (stats.get("numberOfFailedGrabs") or 0) + (stats.get("numberOfFailedQueries") or 0)
        average = stats.get("averageResponseTime")
        row.avg_response_time = round(average) if average is not None else None

        db.flush()
        return row

    def count_grab(self, db: Session, record: dict, day: date) -> IndexerStat:
        indexer_name = (record.get("indexer") or {}).get("name") or "Unknown"
        row = self._daily_row(db, indexer_name, day)

        row.grabs = (row.grabs or 0) + 1
        if record.get("successful") is False:
            row.failed_grabs = (row.failed_grabs or 0) + 1

        elapsed = record.get("elapsedTime")
        if elapsed:
            if row.avg_response_time is None:
                row.avg_response_time = elapsed
            else:
                row.avg_response_time = round((row.avg_response_time + elapsed) / 2)

        db.flush()
        return row
