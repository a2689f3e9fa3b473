from countarr.models.connection import ServiceConnection, ServiceType
from countarr.models.media_item import MediaItem
from countarr.models.episode import Episode
from countarr.models.download_event import DownloadEvent
from countarr.models.playback_event import PlaybackEvent
from countarr.models.subtitle_event import SubtitleEvent
from countarr.models.indexer_stat import IndexerStat
from countarr.models.request import Request
from countarr.models.setting import Setting
from countarr.models.sync_state import SyncState

__all__ = [
    "ServiceConnection",
    "ServiceType",
    "MediaItem",
    "Episode",
    "DownloadEvent",
    "PlaybackEvent",
    "SubtitleEvent",
    "IndexerStat",
    "Request",
    "Setting",
    "SyncState",
]
