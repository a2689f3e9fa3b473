from countarr.collectors.base import BaseCollector, SyncResult, UnsupportedSyncError
from countarr.collectors.radarr import RadarrCollector
from countarr.collectors.sonarr import SonarrCollector
from countarr.collectors.bazarr import BazarrCollector
from countarr.collectors.prowlarr import ProwlarrCollector
from countarr.collectors.jellyseerr import JellyseerrCollector
from countarr.collectors.emby import EmbyCollector
from countarr.models import ServiceConnection, ServiceType

COLLECTORS = {
    ServiceType.RADARR: RadarrCollector,
    ServiceType.SONARR: SonarrCollector,
    ServiceType.BAZARR: BazarrCollector,
    ServiceType.PROWLARR: ProwlarrCollector,
    ServiceType.JELLYSEERR: JellyseerrCollector,
    ServiceType.EMBY: EmbyCollector,
    ServiceType.JELLYFIN: EmbyCollector,
}


def create_collector(connection: ServiceConnection, **kwargs) -> BaseCollector:
    """Collector für eine Verbindung, ausgewählt über den Service-Typ"""
    collector_class = COLLECTORS.get(ServiceType(connection.type))
    if collector_class is None:
        raise ValueError(f"No collector for service type {connection.type}")
    return collector_class(connection, **kwargs)


__all__ = [
    "BaseCollector",
    "SyncResult",
    "UnsupportedSyncError",
    "RadarrCollector",
    "SonarrCollector",
    "BazarrCollector",
    "ProwlarrCollector",
    "JellyseerrCollector",
    "EmbyCollector",
    "COLLECTORS",
    "create_collector",
]
