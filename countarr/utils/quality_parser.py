"""
Release title parsing: resolution, source, codecs and release group.

Pattern tables are ordered, the first match wins.
"""
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

UNKNOWN = "unknown"

_I = re.IGNORECASE

RESOLUTION_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\b2160p\b", _I), "2160p"),
    (re.compile(r"\b4k\b", _I), "2160p"),
    (re.compile(r"\buhd\b", _I), "2160p"),
    (re.compile(r"\b1080p\b", _I), "1080p"),
    (re.compile(r"\b1080i\b", _I), "1080p"),
    (re.compile(r"\b720p\b", _I), "720p"),
    (re.compile(r"\b576p\b", _I), "576p"),
    (re.compile(r"\b480p\b", _I), "480p"),
    (re.compile(r"\bsdtv\b", _I), "480p"),
]

# More specific sources first
SOURCE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bremux\b", _I), "remux"),
    (re.compile(r"\bblu-?ray\b", _I), "bluray"),
    (re.compile(r"\bbdrip\b", _I), "bluray"),
    (re.compile(r"\bweb-?dl\b", _I), "webdl"),
    (re.compile(r"\bamazon\b", _I), "webdl"),
    (re.compile(r"\bamzn\b", _I), "webdl"),
    (re.compile(r"\bnetflix\b", _I), "webdl"),
    (re.compile(r"\bnf\b", _I), "webdl"),
    (re.compile(r"\bdsnp\b", _I), "webdl"),
    (re.compile(r"\bdisney\+?\b", _I), "webdl"),
    (re.compile(r"\bhmax\b", _I), "webdl"),
    (re.compile(r"\bweb-?rip\b", _I), "webrip"),
    (re.compile(r"\bhdtv\b", _I), "hdtv"),
    (re.compile(r"\bpdtv\b", _I), "hdtv"),
    (re.compile(r"\bdsr\b", _I), "hdtv"),
    (re.compile(r"\bdvdrip\b", _I), "dvd"),
    (re.compile(r"\bdvd-?r\b", _I), "dvd"),
    (re.compile(r"\bdvd\b", _I), "dvd"),
    (re.compile(r"\bcam\b", _I), "cam"),
    (re.compile(r"\bhdcam\b", _I), "cam"),
    (re.compile(r"\bts\b", _I), "telesync"),
    (re.compile(r"\btelesync\b", _I), "telesync"),
    (re.compile(r"\btc\b", _I), "telecine"),
    (re.compile(r"\btelecine\b", _I), "telecine"),
    (re.compile(r"\bworkprint\b", _I), "workprint"),
    (re.compile(r"\bwp\b", _I), "workprint"),
]

VIDEO_CODEC_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bav1\b", _I), "av1"),
    (re.compile(r"\bx265\b", _I), "x265"),
    (re.compile(r"\bh\.?265\b", _I), "h265"),
    (re.compile(r"\bhevc\b", _I), "hevc"),
    (re.compile(r"\bx264\b", _I), "x264"),
    (re.compile(r"\bh\.?264\b", _I), "h264"),
    (re.compile(r"\bavc\b", _I), "h264"),
    (re.compile(r"\bvp9\b", _I), "vp9"),
    (re.compile(r"\bxvid\b", _I), "xvid"),
    (re.compile(r"\bdivx\b", _I), "divx"),
    (re.compile(r"\bmpeg-?2\b", _I), "mpeg2"),
]

AUDIO_CODEC_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\batmos\b", _I), "atmos"),
    (re.compile(r"\btruehd\b", _I), "truehd"),
    (re.compile(r"\bdts-?hd\b", _I), "dtshd"),
    (re.compile(r"\bdts-?ma\b", _I), "dtshd"),
    (re.compile(r"\bdts\b", _I), "dts"),
    (re.compile(r"\beac3\b", _I), "eac3"),
    (re.compile(r"\bdd\+\b", _I), "eac3"),
    (re.compile(r"\bddp\b", _I), "eac3"),
    (re.compile(r"\bac3\b", _I), "ac3"),
    (re.compile(r"\bdd5\.?1\b", _I), "ac3"),
    (re.compile(r"\bdolby digital\b", _I), "ac3"),
    (re.compile(r"\bflac\b", _I), "flac"),
    (re.compile(r"\baac\b", _I), "aac"),
    (re.compile(r"\bopus\b", _I), "opus"),
    (re.compile(r"\bmp3\b", _I), "mp3"),
]

HDR_RE = re.compile(r"\bhdr10?\+?\b|\bdolby.?vision\b|\bdv\b", _I)
DOLBY_VISION_RE = re.compile(r"\bdolby.?vision\b|\b(?:dv|dovi)\b", _I)
ATMOS_RE = re.compile(r"\batmos\b", _I)
THREE_D_RE = re.compile(r"\b3d\b", _I)

RELEASE_GROUP_RE = re.compile(r"-([a-zA-Z0-9]+)(?:\[[\w.]+\])?$")
VIDEO_EXTENSION_RE = re.compile(r"\.(mkv|mp4|avi|mov|wmv|flv|webm)$", _I)
RELEASE_GROUP_FALSE_POSITIVES = {
    "720p", "1080p", "2160p", "x264", "x265", "hevc", "hdr", "remux", "bluray", "web", "amzn", "nf",
}

RESOLUTION_SCORES = {"2160p": 100, "1080p": 75, "720p": 50, "576p": 30, "480p": 20}
SOURCE_SCORES = {
    "remux": 100, "bluray": 90, "webdl": 80, "webrip": 70, "hdtv": 50,
    "dvd": 30, "telecine": 20, "telesync": 15, "cam": 5, "workprint": 5,
}
CODEC_SCORES = {
    "av1": 100, "x265": 90, "h265": 90, "hevc": 90, "vp9": 75,
    "x264": 70, "h264": 70, "xvid": 30, "divx": 30, "mpeg2": 20,
}


@dataclass
class ParsedQuality:
    resolution: str = UNKNOWN
    source: str = UNKNOWN
    video_codec: str = UNKNOWN
    audio_codec: str = UNKNOWN
    is_3d: bool = False
    is_hdr: bool = False
    is_dolby_vision: bool = False
    is_atmos: bool = False
    quality_score: int = 0


def _find_match(text: str, patterns: List[Tuple[re.Pattern, str]]) -> str:
    for pattern, value in patterns:
        if pattern.search(text):
            return value
    return UNKNOWN


def parse_quality(release_title: Optional[str]) -> ParsedQuality:
    title = release_title or ""

    parsed = ParsedQuality(
        resolution=_find_match(title, RESOLUTION_PATTERNS),
        source=_find_match(title, SOURCE_PATTERNS),
        video_codec=_find_match(title, VIDEO_CODEC_PATTERNS),
        audio_codec=_find_match(title, AUDIO_CODEC_PATTERNS),
        is_3d=bool(THREE_D_RE.search(title)),
        is_hdr=bool(HDR_RE.search(title)),
        is_dolby_vision=bool(DOLBY_VISION_RE.search(title)),
        is_atmos=bool(ATMOS_RE.search(title)),
    )

    # Gewichtung: Auflösung 40%, Quelle 35%, Codec 25%
    score = math.floor(
        RESOLUTION_SCORES.get(parsed.resolution, 0) * 0.4
        + SOURCE_SCORES.get(parsed.source, 0) * 0.35
        + CODEC_SCORES.get(parsed.video_codec, 0) * 0.25
        + 0.5
    )
    if parsed.is_hdr:
        score = min(100, score + 5)
    if parsed.is_dolby_vision:
        score = min(100, score + 3)
    if parsed.is_atmos:
        score = min(100, score + 2)

    parsed.quality_score = score
    return parsed


def parse_release_group(release_title: Optional[str]) -> Optional[str]:
    """Release group after the last dash, e.g. "Movie.2020.1080p.BluRay.x264-SPARKS" -> "SPARKS"."""
    cleaned = VIDEO_EXTENSION_RE.sub("", release_title or "")

    match = RELEASE_GROUP_RE.search(cleaned)
    if not match:
        return None

    group = match.group(1)
    if group.lower() in RELEASE_GROUP_FALSE_POSITIVES:
        return None
    return group
