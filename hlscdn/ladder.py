from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence


# ---------- filter constants ----------
ADMIT_FACTOR = 1.5        # offer rungs up to 1.5x the client hint
RECOMMEND_FACTOR = 0.7    # safety factor for the recommended rung
VIABLE_FACTOR = 0.9

# caps are rung ids; a custom ladder shorter than a cap is simply offered in full
DEFAULT_MAX_QUALITY = 7
DEVICE_MAX_QUALITY: Dict[str, int] = {
    "mobile": 5,    # 1080p30
    "tablet": 6,    # 1080p60
    "smarttv": 7,   # 4K
    "desktop": 7,
}


@dataclass(frozen=True)
class QualityLevel:
    id: int
    bitrate_bps: int
    width: int
    height: int
    fps: int
    codec: str

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


QUALITY_LADDER: List[QualityLevel] = [
    QualityLevel(0, 400_000, 320, 180, 24, "avc1.42001e"),
    QualityLevel(1, 800_000, 480, 270, 24, "avc1.42001e"),
    QualityLevel(2, 1_200_000, 640, 360, 24, "avc1.42001f"),
    QualityLevel(3, 2_000_000, 960, 540, 30, "avc1.4d001f"),
    QualityLevel(4, 3_000_000, 1280, 720, 30, "avc1.640028"),
    QualityLevel(5, 4_500_000, 1920, 1080, 30, "avc1.640028"),
    QualityLevel(6, 8_000_000, 1920, 1080, 60, "avc1.640028"),
    QualityLevel(7, 15_000_000, 3840, 2160, 60, "hev1.1.6.L150.90"),
]


def device_cap(device_type: Optional[str]) -> int:
    """Inclusive max quality id for a device class; unknown classes are unrestricted."""
    return DEVICE_MAX_QUALITY.get((device_type or "").lower(), DEFAULT_MAX_QUALITY)


def filter_qualities(
    device_type: Optional[str],
    bandwidth_bps: float,
    ladder: Sequence[QualityLevel] = QUALITY_LADDER,
) -> List[QualityLevel]:
    cap = device_cap(device_type)
    budget = float(bandwidth_bps) * ADMIT_FACTOR
    return [q for q in ladder if q.id <= cap and q.bitrate_bps <= budget]


def playable_qualities(
    device_type: Optional[str],
    bandwidth_bps: float,
    ladder: Sequence[QualityLevel] = QUALITY_LADDER,
) -> List[QualityLevel]:
    """Same as filter_qualities, but never empty: the lowest rung is always offered."""
    out = filter_qualities(device_type, bandwidth_bps, ladder)
    if not out:
        out = [ladder[0]]
    return out


def recommend_quality(bandwidth_bps: float, ladder: Sequence[QualityLevel] = QUALITY_LADDER) -> QualityLevel:
    budget = float(bandwidth_bps) * RECOMMEND_FACTOR
    for q in reversed(ladder):
        if q.bitrate_bps <= budget:
            return q
    return ladder[0]


def is_viable(level: QualityLevel, bandwidth_bps: float) -> bool:
    return level.bitrate_bps <= float(bandwidth_bps) * VIABLE_FACTOR


def find_level(quality_id: int, ladder: Sequence[QualityLevel] = QUALITY_LADDER) -> Optional[QualityLevel]:
    if 0 <= quality_id < len(ladder):
        return ladder[quality_id]
    return None


# ---------- ladder loader (ladder.json schema) ----------
def ladder_from_json(path: str) -> List[QualityLevel]:
    obj = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(obj, list) or not obj:
        raise ValueError(f"Ladder '{path}' must be a non-empty list")

    out: List[QualityLevel] = []
    last_bps = 0
    for idx, rung in enumerate(obj):
        for k in ("bitrate_bps", "resolution", "fps", "codec"):
            if k not in rung:
                raise ValueError(f"ladder[{idx}] missing {k}")

        bps = int(rung["bitrate_bps"])
        if bps <= 0:
            raise ValueError(f"ladder[{idx}] has non-positive bitrate_bps={bps}")
        # ids are positions, so bitrate order must already be ascending
        if bps <= last_bps:
            raise ValueError(f"ladder[{idx}] bitrate_bps={bps} is not above previous {last_bps}")
        last_bps = bps

        try:
            w, h = (int(x) for x in str(rung["resolution"]).lower().split("x"))
        except ValueError:
            raise ValueError(f"ladder[{idx}] bad resolution '{rung['resolution']}', expected WxH")

        out.append(QualityLevel(idx, bps, w, h, int(rung["fps"]), str(rung["codec"])))

    return out
