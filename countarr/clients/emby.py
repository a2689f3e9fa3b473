from typing import Dict, Optional

from countarr.clients.base import BaseClient, ApiResponse


class EmbyClient(BaseClient):
    """Emby und Jellyfin sprechen dieselbe API, nur die Auth unterscheidet sich"""

    status_path = "/System/Info"

    def __init__(self, url: str, api_key: str, is_jellyfin: bool = False, **kwargs):
        super().__init__(url, api_key, **kwargs)
        self.is_jellyfin = is_jellyfin

    def auth_headers(self) -> Dict[str, str]:
        if self.is_jellyfin:
            return {"Authorization": f'MediaBrowser Token="{self.api_key}"'}
        return {"X-Emby-Token": self.api_key}

    async def get_sessions(self) -> ApiResponse:
        return await self.get("/Sessions")

    async def get_activity_log(self, start_index: int = 0, limit: int = 500,
                               min_date: Optional[str] = None) -> ApiResponse:
        params = {"StartIndex": start_index, "Limit": limit, "HasUserId": "true"}
        if min_date:
            params["MinDate"] = min_date
        return await self.get("/System/ActivityLog/Entries", params)

    async def get_user(self, user_id: str) -> ApiResponse:
        return await self.get(f"/Users/{user_id}")

    async def get_item(self, item_id: str) -> ApiResponse:
        """Single item incl. ProviderIds (data is the item dict or None)"""
        response = await self.get("/Items", {"Ids": item_id, "Fields": "ProviderIds", "Recursive": "true"})
        if response.error:
            return response
        items = (response.data or {}).get("Items") or []
        return ApiResponse(data=items[0] if items else None, status=response.status)
