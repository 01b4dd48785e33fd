from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from hlscdn.manifest import DEFAULT_AUDIO_TRACKS, DEFAULT_SEGMENT_DURATION_S, AudioTrack


DEFAULT_HOST = os.environ.get("HLSCDN_HOST", "localhost")
DEFAULT_PORT = int(os.environ.get("HLSCDN_PORT", "3001"))
DEFAULT_ENV = os.environ.get("HLSCDN_ENV", "development")
DEFAULT_EDGE_SELECTOR = os.environ.get("HLSCDN_EDGE_SELECTOR", "random")
DEFAULT_STORE = os.environ.get("HLSCDN_STORE", "memory")
RANDOM_SEED = 42
DEPLOYMENT = "standalone"


@dataclass
class CdnConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    environment: str = DEFAULT_ENV
    edge_selector: str = DEFAULT_EDGE_SELECTOR
    fixed_edge: Optional[str] = None
    store: str = DEFAULT_STORE
    seed: Optional[int] = RANDOM_SEED
    segment_duration_s: int = DEFAULT_SEGMENT_DURATION_S
    audio_tracks: List[AudioTrack] = field(default_factory=lambda: list(DEFAULT_AUDIO_TRACKS))
    ladder_path: Optional[str] = None
    debug: bool = False
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "CdnConfig":
        """Reads HLSCDN_* at call time (the module defaults are frozen at import)."""
        seed = os.environ.get("HLSCDN_SEED")
        return cls(
            host=os.environ.get("HLSCDN_HOST", DEFAULT_HOST),
            port=int(os.environ.get("HLSCDN_PORT", DEFAULT_PORT)),
            environment=os.environ.get("HLSCDN_ENV", DEFAULT_ENV),
            edge_selector=os.environ.get("HLSCDN_EDGE_SELECTOR", DEFAULT_EDGE_SELECTOR),
            fixed_edge=os.environ.get("HLSCDN_FIXED_EDGE") or None,
            store=os.environ.get("HLSCDN_STORE", DEFAULT_STORE),
            seed=int(seed) if seed else RANDOM_SEED,
            ladder_path=os.environ.get("HLSCDN_LADDER") or None,
            debug=os.environ.get("HLSCDN_DEBUG", "") not in ("", "0", "false"),
        )
