"""
Payment Network Engine
======================
Keeps an undirected graph of users who have already paid each other and
grades every new payment by how close the two users sit in that graph:
  1. Identity Registry (user id <-> dense node handle)
  2. Relationship Graph (networkx.Graph over node handles, append-only)
  3. Direct-Link Index (O(1) "have these two paid each other before?")
  4. Distance Query Engine (early-stopping BFS / uniform-cost search)
  5. Trust Classifier (distance -> one verdict per threshold)
  6. Network Evolution (every processed payment becomes an edge)

A payment between users that already share an edge is resolved through the
index without touching the search. Everything else runs a search whose
working table is a numpy array sized to the node count at query time.

The network only grows; stream results therefore depend on the order in
which payments are processed.
"""

import heapq
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Hashable, Iterator, Optional

import networkx as nx
import numpy as np

import config

logger = logging.getLogger(__name__)

# Distance reported for a pair with no connecting path.
UNREACHABLE = None


# ===========================================================================
# 1. IDENTITY REGISTRY
# ===========================================================================

class IdentityRegistry:
    """Bijection between external user ids and zero-based node handles.

    Handles are handed out in first-seen order and are never reused.
    """

    def __init__(self):
        self._nodes: dict[Hashable, int] = {}  # uid -> node
        self._uids: list[Hashable] = []        # node -> uid

    def resolve(self, uid: Hashable) -> int:
        node = self._nodes.get(uid)
        if node is None:
            node = len(self._uids)
            self._nodes[uid] = node
            self._uids.append(uid)
        return node

    def uid(self, node: int) -> Hashable:
        return self._uids[node]

    def __contains__(self, uid: Hashable) -> bool:
        return uid in self._nodes

    def __len__(self) -> int:
        return len(self._uids)


# ===========================================================================
# 2. DIRECT-LINK INDEX
# ===========================================================================

def canonicalize(u: int, v: int) -> tuple[int, int]:
    """Order a node pair as (smaller, larger) so (u, v) and (v, u) share a key."""
    return (u, v) if u <= v else (v, u)


def pairing_key(a: int, b: int) -> int:
    """
    Encode an ordered pair of integers as a single integer.

    Signed values are folded onto the naturals (0, -1, 1, -2, ... ->
    0, 1, 2, 3, ...) and then combined with Szudzik's elegant pairing,
    which is a bijection N x N -> N. Callers canonicalize first so the
    key identifies an unordered pair.
    """
    x = 2 * a if a >= 0 else -2 * a - 1
    y = 2 * b if b >= 0 else -2 * b - 1
    return x * x + x + y if x >= y else x + y * y


def _pair_tuple(a: int, b: int) -> tuple[int, int]:
    return (a, b)


LINK_KEYINGS: dict[str, Callable] = {
    "pairs": _pair_tuple,
    "pairing": pairing_key,
}


class DirectLinkIndex:
    """Exact-match set of canonical node pairs that already share an edge."""

    def __init__(self, keying: str = "pairs"):
        try:
            self._key = LINK_KEYINGS[keying]
        except KeyError:
            raise ValueError(
                f"Unknown link index {keying!r}; expected one of {sorted(LINK_KEYINGS)}"
            ) from None
        self.keying = keying
        self._keys: set = set()

    def add(self, u: int, v: int) -> None:
        self._keys.add(self._key(*canonicalize(u, v)))

    def contains(self, u: int, v: int) -> bool:
        return self._key(*canonicalize(u, v)) in self._keys

    def __len__(self) -> int:
        return len(self._keys)


# ===========================================================================
# 3. RELATIONSHIP GRAPH
# ===========================================================================

class RelationshipGraph:
    """
    Undirected, unit-weight, append-only graph over node handles.

    Every insertion updates the adjacency (used by the distance search) and
    the Direct-Link Index (used by the fast path) together, so both always
    agree on which edges exist.
    """

    canonicalize = staticmethod(canonicalize)

    def __init__(self, links: Optional[DirectLinkIndex] = None):
        self._graph = nx.Graph()
        self.links = links if links is not None else DirectLinkIndex()

    def add_node(self, node: int) -> None:
        # No-op for a node that is already present.
        self._graph.add_node(node)

    def insert_edge(self, u: int, v: int) -> bool:
        """Add edge u-v. Returns False when it already existed."""
        if u == v:
            raise ValueError(f"Refusing to add a self-loop on node {u}")
        if u not in self._graph or v not in self._graph:
            raise ValueError(f"Unknown node in edge ({u}, {v})")
        a, b = canonicalize(u, v)
        if self._graph.has_edge(a, b):
            return False
        self._graph.add_edge(a, b, weight=1)
        self.links.add(a, b)
        return True

    def has_edge(self, u: int, v: int) -> bool:
        return self._graph.has_edge(u, v)

    def neighbors(self, node: int):
        return self._graph.adj[node]

    def edges(self) -> Iterator[tuple[int, int]]:
        for u, v in self._graph.edges():
            yield canonicalize(u, v)

    def __contains__(self, node: int) -> bool:
        return node in self._graph

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def view(self) -> nx.Graph:
        """Read-only networkx view of the underlying graph."""
        return self._graph.copy(as_view=True)


# ===========================================================================
# 4. DISTANCE QUERY ENGINE
# ===========================================================================

def _distance_table(graph: RelationshipGraph, source: int, target: int) -> np.ndarray:
    for node in (source, target):
        if node not in graph:
            raise KeyError(node)
    # Handles are dense, so the table is indexed directly by node.
    dist = np.full(graph.node_count, np.inf)
    dist[source] = 0
    return dist


def bfs_distance(graph: RelationshipGraph, source: int, target: int) -> Optional[int]:
    """
    Hop count from source to target, or UNREACHABLE.

    Breadth-first frontier expansion; returns the moment the target is
    discovered instead of exhausting the component.
    """
    dist = _distance_table(graph, source, target)
    if source == target:
        return 0

    frontier = deque([source])
    while frontier:
        u = frontier.popleft()
        step = dist[u] + 1
        for v in graph.neighbors(u):
            if dist[v] == np.inf:
                dist[v] = step
                if v == target:
                    return int(step)
                frontier.append(v)
    return UNREACHABLE


def uniform_cost_distance(graph: RelationshipGraph, source: int, target: int) -> Optional[int]:
    """
    Hop count from source to target, or UNREACHABLE.

    Dijkstra relaxation over edge weights (all 1); stops once the target is
    popped from the heap, i.e. finalized.
    """
    dist = _distance_table(graph, source, target)

    heap = [(0, source)]
    while heap:
        d, u = heapq.heappop(heap)
        if d > dist[u]:
            continue  # stale entry
        if u == target:
            return int(d)
        for v, attrs in graph.neighbors(u).items():
            candidate = d + attrs.get("weight", 1)
            if candidate < dist[v]:
                dist[v] = candidate
                heapq.heappush(heap, (candidate, v))
    return UNREACHABLE


DISTANCE_METHODS: dict[str, Callable] = {
    "bfs": bfs_distance,
    "dijkstra": uniform_cost_distance,
}


# ===========================================================================
# 5. TRUST CLASSIFIER
# ===========================================================================

class Verdict(str, Enum):
    TRUSTED = "trusted"
    UNVERIFIED = "unverified"


class TrustClassifier:
    """Maps a distance to one verdict per threshold (trusted iff distance <= T)."""

    def __init__(self, thresholds=(1, 2, 4)):
        thresholds = tuple(int(t) for t in thresholds)
        if not thresholds:
            raise ValueError("At least one trust threshold is required")
        if thresholds[0] < 1 or any(b <= a for a, b in zip(thresholds, thresholds[1:])):
            raise ValueError(
                f"Trust thresholds must be positive and strictly increasing: {thresholds}"
            )
        self.thresholds = thresholds

    def classify(self, distance: Optional[int]) -> tuple[Verdict, ...]:
        if distance is UNREACHABLE:
            return (Verdict.UNVERIFIED,) * len(self.thresholds)
        return tuple(
            Verdict.TRUSTED if distance <= t else Verdict.UNVERIFIED
            for t in self.thresholds
        )


# ===========================================================================
# 6. PAYMENT NETWORK  (composition + evolution)
# ===========================================================================

@dataclass(frozen=True)
class PairResult:
    """Outcome of grading one payment."""
    uid_a: Hashable
    uid_b: Hashable
    distance: Optional[int]
    linked: bool  # resolved through the Direct-Link Index
    verdicts: tuple[Verdict, ...]

    @property
    def reachable(self) -> bool:
        return self.distance is not UNREACHABLE

    def to_dict(self) -> dict:
        return {
            "id1": self.uid_a,
            "id2": self.uid_b,
            "distance": self.distance,
            "existing_link": self.linked,
            "verdicts": [v.value for v in self.verdicts],
        }


class PaymentNetwork:
    """
    The engine owned by one processing loop.

    Batch records go through ``ingest_known_relationship`` (edge only);
    stream records go through ``process_pair`` (grade, then add the edge).
    """

    def __init__(self, thresholds=(1, 2, 4), method: str = "bfs", link_index: str = "pairs"):
        try:
            self._distance = DISTANCE_METHODS[method]
        except KeyError:
            raise ValueError(
                f"Unknown distance method {method!r}; expected one of {sorted(DISTANCE_METHODS)}"
            ) from None
        self.method = method
        self.registry = IdentityRegistry()
        self.graph = RelationshipGraph(DirectLinkIndex(link_index))
        self.classifier = TrustClassifier(thresholds)

        self.pairs_processed = 0
        self.fast_path_hits = 0
        self.unreachable_pairs = 0

    @classmethod
    def from_config(cls) -> "PaymentNetwork":
        return cls(
            thresholds=config.TRUST_THRESHOLDS,
            method=config.DISTANCE_METHOD,
            link_index=config.LINK_INDEX,
        )

    @property
    def thresholds(self) -> tuple[int, ...]:
        return self.classifier.thresholds

    def resolve_user(self, uid: Hashable) -> int:
        node = self.registry.resolve(uid)
        self.graph.add_node(node)
        return node

    def distance(self, source: int, target: int) -> Optional[int]:
        return self._distance(self.graph, source, target)

    def ingest_known_relationship(self, uid_a: Hashable, uid_b: Hashable) -> bool:
        """Record a historical payment. Returns True if it added a new edge."""
        a = self.resolve_user(uid_a)
        b = self.resolve_user(uid_b)
        if a == b:
            return False
        return self.graph.insert_edge(a, b)

    def process_pair(self, uid_a: Hashable, uid_b: Hashable) -> PairResult:
        """Grade a streamed payment, then add it to the network."""
        a = self.resolve_user(uid_a)
        b = self.resolve_user(uid_b)

        linked = self.graph.links.contains(a, b)
        if linked:
            distance = 1
            self.fast_path_hits += 1
            logger.debug("Existing link between user %s and user %s", uid_a, uid_b)
        else:
            distance = self.distance(a, b)
            if distance is UNREACHABLE:
                self.unreachable_pairs += 1
                logger.debug("No path between user %s and user %s", uid_a, uid_b)
            else:
                logger.debug("Degree between user %s and user %s is %d", uid_a, uid_b, distance)

        # Every graded payment strengthens the network, whatever its verdict.
        if a != b:
            self.graph.insert_edge(a, b)
        self.pairs_processed += 1

        return PairResult(uid_a, uid_b, distance, linked, self.classifier.classify(distance))

    # -- introspection -------------------------------------------------------

    def edges(self) -> Iterator[tuple[Hashable, Hashable]]:
        """Every edge as a pair of external user ids."""
        uid = self.registry.uid
        for a, b in self.graph.edges():
            yield uid(a), uid(b)

    @property
    def node_count(self) -> int:
        return self.graph.node_count

    @property
    def edge_count(self) -> int:
        return self.graph.edge_count

    def stats(self) -> dict:
        return {
            "users": self.node_count,
            "relationships": self.edge_count,
            "pairs_processed": self.pairs_processed,
            "existing_links": self.fast_path_hits,
            "unreachable": self.unreachable_pairs,
        }
