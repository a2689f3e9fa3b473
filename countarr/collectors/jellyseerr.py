import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from countarr.collectors.base import BaseCollector, SyncResult
from countarr.models import MediaItem, Request, ServiceType
from countarr.utils.dates import parse_datetime

logger = logging.getLogger(__name__)

# Jellyseerr request status codes
REQUEST_STATUS = {
    1: "pending",
    2: "approved",
    3: "declined",
    4: "available",
    5: "available",  # partially available
}


def map_request_status(status) -> str:
    return REQUEST_STATUS.get(status, "pending")


class JellyseerrCollector(BaseCollector):
    service_type = ServiceType.JELLYSEERR

    async def sync_history(self, since: Optional[datetime] = None, import_months: int = 12) -> SyncResult:
        # Requests haben kein Zeitfenster, es wird immer die ganze Liste abgeglichen
        return await self.sync_requests()

    async def sync_requests(self) -> SyncResult:
        result = SyncResult()
        page = 1

        db = self.session_factory()
        try:
            while True:
                response = await self.client.get_requests(page, self.page_size)
                if response.error:
                    result.errors.append(f"Failed to fetch requests: {response.error}")
                    break

                data = response.data or {}
                requests = data.get("results") or []
                if not requests:
                    break

                for request in requests:
                    try:
                        if self.upsert_request(db, request):
                            result.added += 1
                        else:
                            result.updated += 1
                        db.commit()
                        result.processed += 1
                    except Exception as e:
                        db.rollback()
                        result.errors.append(f"Failed to process request {request.get('id')}: {e}")

                total_pages = (data.get("pageInfo") or {}).get("pages")
                if len(requests) < self.page_size or (total_pages and page >= total_pages):
                    break
                page += 1
                await self.pause()
        finally:
            db.close()

        logger.info(f"✓ [{self.name}] Processed {result.processed} requests")
        return result

    def upsert_request(self, db: Session, request: dict) -> bool:
        """Returns True when the request was new"""
        media = request.get("media") or {}
        tmdb_id = media.get("tmdbId")
        status = map_request_status(request.get("status"))

        media_item = None
        if tmdb_id:
            media_item = db.query(MediaItem).filter_by(tmdb_id=tmdb_id).first()

        if media_item:
            title = media_item.title
        elif tmdb_id:
            title = f"TMDB:{tmdb_id}"
        else:
            title = f"Request {request['id']}"

        row = db.query(Request).filter_by(external_id=request["id"]).first()
        created = row is None
        if created:
            row = Request(external_id=request["id"], source_app=self.service_type.value)
            db.add(row)

        updated_at = parse_datetime(request.get("updatedAt"))
        requested_by = request.get("requestedBy") or {}

        row.media_item_id = media_item.id if media_item else None
        row.type = "movie" if request.get("type") == "movie" else "series"
        row.title = title
        row.requested_by = requested_by.get("displayName") or requested_by.get("email")
        row.requested_at = parse_datetime(request.get("createdAt"))
        row.status = status
        row.approved_at = updated_at if status in ("approved", "available") else None
        row.available_at = updated_at if status == "available" else None

        db.flush()
        return created
