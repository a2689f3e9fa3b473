from countarr.clients.base import BaseClient, ApiResponse


class SonarrClient(BaseClient):
    status_path = "/api/v3/system/status"

    async def get_series(self) -> ApiResponse:
        return await self.get("/api/v3/series")

    async def get_episodes(self, series_id: int) -> ApiResponse:
        return await self.get("/api/v3/episode", {"seriesId": series_id})

    async def get_history(self, page: int = 1, page_size: int = 100,
                          sort_direction: str = "descending") -> ApiResponse:
        """Paginated history incl. embedded series + episode, newest first"""
        return await self.get("/api/v3/history", {
            "page": page,
            "pageSize": page_size,
            "sortKey": "date",
            "sortDirection": sort_direction,
            "includeSeries": "true",
            "includeEpisode": "true",
        })
