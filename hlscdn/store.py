"""
Session, bandwidth and analytics state.

Everything lives in process memory: nothing expires, nothing is evicted, and the
analytics log grows for the lifetime of the process. Fine for a demo, a
resource-exhaustion risk anywhere else.

Backends:
  memory  plain dicts; concurrent bandwidth updates for one session are
          last-write-wins (stale estimates are tolerated)
  locked  same maps, mutations under a lock and per-session locks around
          read-modify-write, so EWMA updates are never lost
"""

from __future__ import annotations

import contextlib
import math
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Type

from hlscdn.ladder import QualityLevel


EWMA_OLD_WEIGHT = 0.7
EWMA_NEW_WEIGHT = 0.3


def now_ms() -> int:
    return int(time.time() * 1000)


def new_session_id() -> str:
    return secrets.token_hex(16)


# ----------------------------- models -----------------------------

@dataclass
class Session:
    session_id: str
    content_id: str
    device_type: str
    start_time_ms: int
    assigned_edge: str
    selected_quality_ids: List[int] = field(default_factory=list)  # offered at manifest time
    played_quality_ids: List[int] = field(default_factory=list)    # delivered segments


# ----------------------------- backends -----------------------------

STORE_REGISTRY: Dict[str, Type["StreamStore"]] = {}

def register_store(name: str):
    def deco(cls: Type["StreamStore"]):
        STORE_REGISTRY[name] = cls
        cls.NAME = name
        return cls
    return deco


class StreamStore:
    NAME = "base"

    def get_session(self, session_id: Optional[str]) -> Optional[Session]:
        raise NotImplementedError

    def put_session(self, session: Session) -> None:
        raise NotImplementedError

    def session_count(self) -> int:
        raise NotImplementedError

    def get_bandwidth(self, session_id: Optional[str]) -> Optional[float]:
        raise NotImplementedError

    def set_bandwidth(self, session_id: Optional[str], value: float) -> None:
        raise NotImplementedError

    def append_event(self, event: Dict) -> None:
        raise NotImplementedError

    def events_for(self, session_id: Optional[str]) -> List[Dict]:
        raise NotImplementedError

    def event_count(self) -> int:
        raise NotImplementedError

    def key_lock(self, key: Optional[str]):
        """Scope for a read-modify-write on one key."""
        return contextlib.nullcontext()


@register_store("memory")
class InMemoryStore(StreamStore):
    def __init__(self):
        self.sessions: Dict[str, Session] = {}
        self.bandwidth: Dict[Optional[str], float] = {}
        self.events: List[Dict] = []

    def get_session(self, session_id: Optional[str]) -> Optional[Session]:
        if session_id is None:
            return None
        return self.sessions.get(session_id)

    def put_session(self, session: Session) -> None:
        self.sessions[session.session_id] = session

    def session_count(self) -> int:
        return len(self.sessions)

    def get_bandwidth(self, session_id: Optional[str]) -> Optional[float]:
        return self.bandwidth.get(session_id)

    def set_bandwidth(self, session_id: Optional[str], value: float) -> None:
        self.bandwidth[session_id] = float(value)

    def append_event(self, event: Dict) -> None:
        self.events.append(event)

    def events_for(self, session_id: Optional[str]) -> List[Dict]:
        return [e for e in list(self.events) if e.get("sessionId") == session_id]

    def event_count(self) -> int:
        return len(self.events)


@register_store("locked")
class LockedStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self._lock = threading.RLock()
        self._key_locks: Dict[Optional[str], threading.Lock] = {}

    def put_session(self, session: Session) -> None:
        with self._lock:
            super().put_session(session)

    def set_bandwidth(self, session_id: Optional[str], value: float) -> None:
        with self._lock:
            super().set_bandwidth(session_id, value)

    def append_event(self, event: Dict) -> None:
        with self._lock:
            super().append_event(event)

    def events_for(self, session_id: Optional[str]) -> List[Dict]:
        with self._lock:
            return super().events_for(session_id)

    @contextlib.contextmanager
    def key_lock(self, key: Optional[str]) -> Iterator[None]:
        with self._lock:
            lk = self._key_locks.setdefault(key, threading.Lock())
        with lk:
            yield


def make_store(name: str) -> StreamStore:
    if name not in STORE_REGISTRY:
        raise ValueError(f"Unknown store '{name}'. Known: {', '.join(sorted(STORE_REGISTRY))}")
    return STORE_REGISTRY[name]()


# ----------------------------- operations -----------------------------

def register_session(
    store: StreamStore,
    session_id: str,
    content_id: str,
    device_type: str,
    edge: str,
    qualities: Sequence[QualityLevel],
    start_ms: Optional[int] = None,
) -> Session:
    session = Session(
        session_id=session_id,
        content_id=content_id,
        device_type=device_type,
        start_time_ms=now_ms() if start_ms is None else int(start_ms),
        assigned_edge=edge,
        selected_quality_ids=[q.id for q in qualities],
    )
    store.put_session(session)
    return session


def update_bandwidth(store: StreamStore, session_id: Optional[str], sample_bps: float) -> float:
    """EWMA: 0.7*old + 0.3*sample. The first sample for a session is taken as-is."""
    sample = float(sample_bps)
    if not math.isfinite(sample):
        raise ValueError(f"bandwidth sample must be finite, got {sample_bps!r}")
    with store.key_lock(session_id):
        old = store.get_bandwidth(session_id)
        # 0.7*s + 0.3*s == s, skip the float round trip
        est = sample if old is None else EWMA_OLD_WEIGHT * old + EWMA_NEW_WEIGHT * sample
        store.set_bandwidth(session_id, est)
    return est


def record_played_quality(store: StreamStore, session_id: Optional[str], quality_id: int) -> bool:
    with store.key_lock(session_id):
        session = store.get_session(session_id)
        if session is None:
            return False
        session.played_quality_ids.append(int(quality_id))
    return True
