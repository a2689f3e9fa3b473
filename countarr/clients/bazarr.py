from typing import Dict

from countarr.clients.base import BaseClient, ApiResponse


class BazarrClient(BaseClient):
    status_path = "/api/system/status"

    def auth_headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.api_key}

    @staticmethod
    def _version_from_status(data):
        # {"data": {"bazarr_version": "1.4.0", ...}}
        if isinstance(data, dict):
            inner = data.get("data") or {}
            return inner.get("bazarr_version")
        return None

    async def get_movie_history(self, start: int = 0, length: int = 500) -> ApiResponse:
        return await self.get("/api/movies/history", {"start": start, "length": length})

    async def get_series_history(self, start: int = 0, length: int = 500) -> ApiResponse:
        return await self.get("/api/episodes/history", {"start": start, "length": length})
