import pytest

from countarr.services.capabilities import get_capabilities, supports


@pytest.mark.parametrize("service_type, capability, expected", [
    ("radarr", "history", True),
    ("radarr", "metadata", True),
    ("radarr", "playback", False),
    ("sonarr", "metadata", True),
    ("bazarr", "history", True),
    ("bazarr", "metadata", False),
    ("prowlarr", "stats", True),
    ("prowlarr", "history", True),
    ("jellyseerr", "history", True),
    ("emby", "playback", True),
    ("emby", "history", False),
    ("jellyfin", "playback", True),
])
def test_supports(service_type, capability, expected):
    assert supports(service_type, capability) is expected


def test_unknown_service_has_no_capabilities():
    capabilities = get_capabilities("plex")
    assert not any([capabilities.history, capabilities.metadata, capabilities.playback, capabilities.stats])
    assert supports("plex", "history") is False
