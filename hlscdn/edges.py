from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Type

import numpy as np


DEGRADED_CAPACITY = 0.2


@dataclass(frozen=True)
class EdgeLocation:
    name: str
    latency_ms: float
    capacity: float   # 0..1

    @property
    def status(self) -> str:
        return "healthy" if self.capacity > DEGRADED_CAPACITY else "degraded"

    def to_json(self) -> Dict:
        return {
            "location": self.name,
            "latency": self.latency_ms,
            "capacity": self.capacity,
            "status": self.status,
        }


EDGE_LOCATIONS: List[EdgeLocation] = [
    EdgeLocation("us-east", 10, 0.8),
    EdgeLocation("us-west", 15, 0.9),
    EdgeLocation("us-central", 20, 0.7),
    EdgeLocation("eu-west", 80, 0.6),
]


# ----------------------------- registry -----------------------------

SELECTOR_REGISTRY: Dict[str, Type["EdgeSelector"]] = {}

def register_selector(name: str):
    def deco(cls: Type["EdgeSelector"]):
        SELECTOR_REGISTRY[name] = cls
        cls.NAME = name
        return cls
    return deco


class EdgeSelector:
    """
    Picks the edge that serves a request.
    Subclasses implement _pick(); select() serializes calls since the server is threaded.
    """

    NAME = "base"

    def __init__(self, edges: Sequence[EdgeLocation], **_kwargs):
        if not edges:
            raise ValueError("EdgeSelector needs at least one edge")
        self.edges = list(edges)
        self._lock = threading.Lock()

    def select(self, client_ip: Optional[str] = None) -> EdgeLocation:
        with self._lock:
            return self._pick(client_ip)

    def _pick(self, client_ip: Optional[str]) -> EdgeLocation:
        raise NotImplementedError


@register_selector("random")
class RandomSelector(EdgeSelector):
    def __init__(self, edges: Sequence[EdgeLocation], seed: Optional[int] = None, **kwargs):
        super().__init__(edges, **kwargs)
        self.rng = np.random.RandomState(seed)

    def _pick(self, client_ip: Optional[str]) -> EdgeLocation:
        return self.edges[int(self.rng.randint(len(self.edges)))]


@register_selector("round_robin")
class RoundRobinSelector(EdgeSelector):
    def __init__(self, edges: Sequence[EdgeLocation], **kwargs):
        super().__init__(edges, **kwargs)
        self._next = 0

    def _pick(self, client_ip: Optional[str]) -> EdgeLocation:
        edge = self.edges[self._next]
        self._next = (self._next + 1) % len(self.edges)
        return edge


@register_selector("weighted")
class CapacityWeightedSelector(EdgeSelector):
    """
    Smooth weighted round-robin (nginx style) over declared capacity.
    Over sum(weights) picks each edge is chosen in proportion to its capacity,
    interleaved rather than in bursts.
    """

    def __init__(self, edges: Sequence[EdgeLocation], **kwargs):
        super().__init__(edges, **kwargs)
        self.weights = np.array([max(0.0, e.capacity) for e in self.edges], dtype=np.float64)
        if float(np.sum(self.weights)) <= 0:
            raise ValueError("weighted selector needs at least one edge with capacity > 0")
        self.current = np.zeros_like(self.weights)

    def _pick(self, client_ip: Optional[str]) -> EdgeLocation:
        self.current += self.weights
        i = int(np.argmax(self.current))
        self.current[i] -= float(np.sum(self.weights))
        return self.edges[i]


@register_selector("fixed")
class FixedSelector(EdgeSelector):
    def __init__(self, edges: Sequence[EdgeLocation], fixed_edge: Optional[str] = None, **kwargs):
        super().__init__(edges, **kwargs)
        if fixed_edge is None:
            self.edge = self.edges[0]
        else:
            match = [e for e in self.edges if e.name == fixed_edge]
            if not match:
                raise ValueError(f"Unknown edge '{fixed_edge}'. Known: {', '.join(e.name for e in self.edges)}")
            self.edge = match[0]

    def _pick(self, client_ip: Optional[str]) -> EdgeLocation:
        return self.edge


def make_selector(name: str, edges: Sequence[EdgeLocation] = EDGE_LOCATIONS, **kwargs) -> EdgeSelector:
    if name not in SELECTOR_REGISTRY:
        raise ValueError(f"Unknown edge selector '{name}'. Known: {', '.join(sorted(SELECTOR_REGISTRY))}")
    return SELECTOR_REGISTRY[name](edges, **kwargs)
