from countarr.clients.base import ApiResponse, BaseClient
from countarr.clients.radarr import RadarrClient
from countarr.clients.sonarr import SonarrClient
from countarr.clients.bazarr import BazarrClient
from countarr.clients.prowlarr import ProwlarrClient
from countarr.clients.jellyseerr import JellyseerrClient
from countarr.clients.emby import EmbyClient
from countarr.models.connection import ServiceType


def create_client(service_type, url: str, api_key: str, **kwargs) -> BaseClient:
    """Client für einen Service-Typ"""
    service_type = ServiceType(service_type)

    if service_type == ServiceType.RADARR:
        return RadarrClient(url, api_key, **kwargs)
    if service_type == ServiceType.SONARR:
        return SonarrClient(url, api_key, **kwargs)
    if service_type == ServiceType.BAZARR:
        return BazarrClient(url, api_key, **kwargs)
    if service_type == ServiceType.PROWLARR:
        return ProwlarrClient(url, api_key, **kwargs)
    if service_type == ServiceType.JELLYSEERR:
        return JellyseerrClient(url, api_key, **kwargs)
    if service_type == ServiceType.EMBY:
        return EmbyClient(url, api_key, is_jellyfin=False, **kwargs)
    if service_type == ServiceType.JELLYFIN:
        return EmbyClient(url, api_key, is_jellyfin=True, **kwargs)
    raise ValueError(f"Unknown service type: {service_type}")


__all__ = [
    "ApiResponse",
    "BaseClient",
    "RadarrClient",
    "SonarrClient",
    "BazarrClient",
    "ProwlarrClient",
    "JellyseerrClient",
    "EmbyClient",
    "create_client",
]
