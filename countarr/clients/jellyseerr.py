from countarr.clients.base import BaseClient, ApiResponse


class JellyseerrClient(BaseClient):
    status_path = "/api/v1/status"

    async def get_requests(self, page: int = 1, page_size: int = 100, request_filter: str = "all") -> ApiResponse:
        return await self.get("/api/v1/request", {
            "take": page_size,
            "skip": (page - 1) * page_size,
            "filter": request_filter,
            "sort": "added",
        })
