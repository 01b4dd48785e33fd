from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from hlscdn.ladder import QualityLevel


HLS_VERSION = 6
DEFAULT_SEGMENT_DURATION_S = 6
VOD_SEGMENT_COUNT = 100
LIVE_WINDOW = 10          # sliding window length for live playlists
AUDIO_CODEC = "mp4a.40.2"


@dataclass(frozen=True)
class AudioTrack:
    name: str
    language: str
    default: bool = False
    autoselect: bool = True
    group_id: str = "audio"

    @property
    def uri(self) -> str:
        return f"audio/{self.language}/index.m3u8"


DEFAULT_AUDIO_TRACKS: List[AudioTrack] = [
    AudioTrack("English", "en", default=True),
    AudioTrack("Spanish", "es", default=False),
]


def _yes(flag: bool) -> str:
    return "YES" if flag else "NO"


def build_master_manifest(
    qualities: Sequence[QualityLevel],
    edge_id: str,
    audio_tracks: Sequence[AudioTrack] = DEFAULT_AUDIO_TRACKS,
) -> str:
    lines = [
        "#EXTM3U",
        f"#EXT-X-VERSION:{HLS_VERSION}",
        f'#EXT-X-SESSION-DATA:DATA-ID="edge.location",VALUE="{edge_id}"',
        "",
    ]

    for t in audio_tracks:
        lines.append(
            f'#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="{t.group_id}",NAME="{t.name}",'
            f"DEFAULT={_yes(t.default)},AUTOSELECT={_yes(t.autoselect)},"
            f'LANGUAGE="{t.language}",URI="{t.uri}"'
        )
    if audio_tracks:
        lines.append("")

    # variants reference the first audio group; no group means muxed audio
    audio_attr = f',AUDIO="{audio_tracks[0].group_id}"' if audio_tracks else ""
    for q in qualities:
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={q.bitrate_bps},RESOLUTION={q.resolution},"
            f'FRAME-RATE={q.fps},CODECS="{q.codec},{AUDIO_CODEC}"{audio_attr}'
        )
        lines.append(f"video/{q.id}/index.m3u8")
        lines.append("")

    return "\n".join(lines) + "\n"


def segment_uri(content_id: str, quality_id: int, index: int) -> str:
    return f"/segment/{content_id}/{quality_id}/{index}.ts"


def build_variant_manifest(
    content_id: str,
    quality_id: int,
    is_live: bool,
    segment_duration_s: int = DEFAULT_SEGMENT_DURATION_S,
) -> str:
    """
    VOD: VOD_SEGMENT_COUNT segments closed by EXT-X-ENDLIST.
    Live: LIVE_WINDOW segments, open-ended (no playlist type, no end tag).
    Every EXTINF carries the nominal duration since segments are synthetic.
    """
    count = LIVE_WINDOW if is_live else VOD_SEGMENT_COUNT

    lines = [
        "#EXTM3U",
        f"#EXT-X-VERSION:{HLS_VERSION}",
        f"#EXT-X-TARGETDURATION:{segment_duration_s}",
        "#EXT-X-MEDIA-SEQUENCE:0",
    ]
    if not is_live:
        lines.append("#EXT-X-PLAYLIST-TYPE:VOD")
    lines.append("")

    for i in range(count):
        lines.append(f"#EXTINF:{segment_duration_s}.000,")
        lines.append(segment_uri(content_id, quality_id, i))

    if not is_live:
        lines.append("#EXT-X-ENDLIST")

    return "\n".join(lines) + "\n"


def count_segments(playlist: str) -> int:
    return sum(1 for ln in playlist.splitlines() if ln.startswith("#EXTINF:"))
