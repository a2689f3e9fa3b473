"""
Welche Sync-Kategorien unterstützt welcher Dienst?
"""
from dataclasses import dataclass

from countarr.models.connection import ServiceType

HISTORY = "history"
METADATA = "metadata"
PLAYBACK = "playback"
STATS = "stats"


@dataclass(frozen=True)
class Capabilities:
    history: bool = False
    metadata: bool = False
    playback: bool = False
    stats: bool = False


NO_CAPABILITIES = Capabilities()

SERVICE_CAPABILITIES = {
    ServiceType.RADARR: Capabilities(history=True, metadata=True),
    ServiceType.SONARR: Capabilities(history=True, metadata=True),
    ServiceType.BAZARR: Capabilities(history=True),
    ServiceType.PROWLARR: Capabilities(history=True, stats=True),
    ServiceType.JELLYSEERR: Capabilities(history=True),
    ServiceType.EMBY: Capabilities(playback=True),
    ServiceType.JELLYFIN: Capabilities(playback=True),
}


def get_capabilities(service_type) -> Capabilities:
    try:
        return SERVICE_CAPABILITIES.get(ServiceType(service_type), NO_CAPABILITIES)
    except ValueError:
        return NO_CAPABILITIES


def supports(service_type, capability: str) -> bool:
    """supports("emby", "playback") -> True"""
    return bool(getattr(get_capabilities(service_type), capability, False))
