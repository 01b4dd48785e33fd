from __future__ import annotations

import math
from typing import Callable, Dict, List, Optional

import numpy as np

from hlscdn.errors import BadRequest
from hlscdn.store import StreamStore, now_ms, update_bandwidth


# ---------- QoE constants (0..5 scale) ----------
QOE_BASE = 5.0
QOE_MIN = 0.0
QOE_MAX = 5.0
QOE_UNKNOWN_SESSION = 3.0
REBUF_PENALTY = 0.5
SWITCH_PENALTY = 0.1
QUALITY_BONUS = 0.5
MAX_QUALITY_ID = 7        # top rung of the built-in ladder

DEFAULT_BANDWIDTH_BPS = 5_000_000
LOW_BANDWIDTH_BPS = 1_000_000
HIGH_BANDWIDTH_BPS = 10_000_000

LOW_BANDWIDTH_TIP = "Consider lowering video quality for smoother playback"
HIGH_BANDWIDTH_TIP = "Network supports 4K streaming"


def track(store: StreamStore, event_type: str, data: Dict, edge: Optional[str] = None, ts_ms: Optional[int] = None) -> Dict:
    event = dict(data)
    event["type"] = event_type
    event["serverTime"] = now_ms() if ts_ms is None else int(ts_ms)
    if edge is not None:
        event["edge"] = edge
    store.append_event(event)
    return event


def ingest_events(
    store: StreamStore,
    session_id: Optional[str],
    events,
    edge_for: Callable[[], str],
) -> int:
    """
    Appends client events (enriched with sessionId/serverTime/edge) and feeds
    bandwidth_sample events into the session's EWMA estimate.
    """
    if not isinstance(events, list):
        raise BadRequest("Invalid events data")

    # validate everything before the first append: a bad batch leaves no trace
    samples: List[Optional[float]] = []
    for i, ev in enumerate(events):
        if not isinstance(ev, dict):
            raise BadRequest(f"Invalid events data: events[{i}] is not an object")
        samples.append(bandwidth_sample(ev, i))

    ts = now_ms()
    for ev, sample in zip(events, samples):
        enriched = dict(ev)
        enriched["sessionId"] = session_id
        enriched["serverTime"] = ts
        enriched["edge"] = edge_for()
        store.append_event(enriched)

        if sample is not None:
            update_bandwidth(store, session_id, sample)

    return len(events)


def bandwidth_sample(ev: Dict, index: int = 0) -> Optional[float]:
    """
    bps value of a bandwidth_sample event, or None when the event carries none.
    Non-numeric and negative values are ignored; numbers that do not fit a
    finite float (1e400, 400-digit ints, NaN) are rejected.
    """
    if ev.get("type") != "bandwidth_sample":
        return None
    bw = ev.get("bandwidth")
    # bool is an int subclass; a JSON true is not a sample
    if not isinstance(bw, (int, float)) or isinstance(bw, bool):
        return None
    try:
        value = float(bw)
    except OverflowError:
        raise BadRequest(f"Invalid events data: events[{index}].bandwidth is out of range")
    if not math.isfinite(value):
        raise BadRequest(f"Invalid events data: events[{index}].bandwidth is out of range")
    return value if value >= 0 else None


def compute_qoe(store: StreamStore, session_id: Optional[str], max_quality_id: int = MAX_QUALITY_ID) -> float:
    """max_quality_id is the top rung of the ladder in use; it normalises the quality bonus."""
    session = store.get_session(session_id)
    if session is None:
        return QOE_UNKNOWN_SESSION

    events = store.events_for(session_id)
    rebuffers = sum(1 for e in events if e.get("type") == "rebuffer")
    switches = sum(1 for e in events if e.get("type") == "quality_switch")

    score = QOE_BASE
    score -= REBUF_PENALTY * rebuffers
    score -= SWITCH_PENALTY * switches

    # offered ladder stands in for watched quality (see played_quality_ids)
    if session.selected_quality_ids and max_quality_id > 0:
        avg_q = float(np.mean(session.selected_quality_ids))
        score += QUALITY_BONUS * (avg_q / max_quality_id)

    return float(min(QOE_MAX, max(QOE_MIN, score)))


def current_bandwidth(store: StreamStore, session_id: Optional[str]) -> float:
    bw = store.get_bandwidth(session_id)
    return float(DEFAULT_BANDWIDTH_BPS) if bw is None else bw


def recommendations(store: StreamStore, session_id: Optional[str]) -> List[str]:
    bw = current_bandwidth(store, session_id)
    out: List[str] = []
    if bw < LOW_BANDWIDTH_BPS:
        out.append(LOW_BANDWIDTH_TIP)
    if bw > HIGH_BANDWIDTH_BPS:
        out.append(HIGH_BANDWIDTH_TIP)
    return out
