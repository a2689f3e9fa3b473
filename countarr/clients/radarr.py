from countarr.clients.base import BaseClient, ApiResponse


class RadarrClient(BaseClient):
    status_path = "/api/v3/system/status"

    async def get_movies(self) -> ApiResponse:
        return await self.get("/api/v3/movie")

    async def get_history(self, page: int = 1, page_size: int = 100,
                          sort_direction: str = "descending") -> ApiResponse:
        """Paginated history incl. embedded movie, newest first"""
        return await self.get("/api/v3/history", {
            "page": page,
            "pageSize": page_size,
            "sortKey": "date",
            "sortDirection": sort_direction,
            "includeMovie": "true",
        })
