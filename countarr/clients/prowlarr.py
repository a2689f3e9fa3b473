from countarr.clients.base import BaseClient, ApiResponse


class ProwlarrClient(BaseClient):
    status_path = "/api/v1/system/status"

    async def get_history(self, page: int = 1, page_size: int = 100,
                          sort_direction: str = "descending") -> ApiResponse:
        return await self.get("/api/v1/history", {
            "page": page,
            "pageSize": page_size,
            "sortKey": "date",
            "sortDirection": sort_direction,
            "includeIndexer": "true",
        })

    async def get_indexer_stats(self) -> ApiResponse:
        return await self.get("/api/v1/indexerstats")
