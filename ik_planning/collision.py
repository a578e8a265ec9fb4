"""
Collision world of capsule-shaped items.

Each item is a line segment with a radius. Arm links are refreshed on every
simulation tick while externally registered obstacles persist until cleared.
"""

import logging
import threading
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .geometry import Point3

logger = logging.getLogger(__name__)

EPSILON = 1e-12


@dataclass
class CollisionItem:
    """Named capsule: segment from origin to end, inflated by radius."""

    name: str
    origin: Point3
    end: Point3
    radius: float = 0.0
    ignore: Set[str] = field(default_factory=set)

    def __post_init__(self):
        self.origin = np.asarray(self.origin, dtype=float)[:3]
        self.end = np.asarray(self.end, dtype=float)[:3]
        self.ignore = set(self.ignore)

    def add_ignore(self, name: str):
        self.ignore.add(name)

    def ignores(self, other: 'CollisionItem') -> bool:
        return other.name in self.ignore or self.name in other.ignore


@dataclass
class CollisionResult:
    """First colliding pair found by an evaluation, with the nearest points."""

    item_a: CollisionItem
    item_b: CollisionItem
    point_a: Point3
    point_b: Point3
    distance: float

    @property
    def names(self) -> Tuple[str, str]:
        return self.item_a.name, self.item_b.name

    def points(self) -> Tuple[Point3, Point3]:
        return self.point_a, self.point_b


def closest_points(p1: Point3, q1: Point3, p2: Point3, q2: Point3) -> Tuple[Point3, Point3]:
    """
    Closest points between segments p1-q1 and p2-q2.

    Degenerate (zero-length) segments are treated as points.

    Returns:
        Tuple of (point on first segment, point on second segment)
    """
    d1 = q1 - p1
    d2 = q2 - p2
    r = p1 - p2
    a = float(d1 @ d1)
    e = float(d2 @ d2)
    f = float(d2 @ r)

    if a <= EPSILON and e <= EPSILON:
        return p1.copy(), p2.copy()
    if a <= EPSILON:
        s = 0.0
        t = np.clip(f / e, 0.0, 1.0)
    else:
        c = float(d1 @ r)
        if e <= EPSILON:
            t = 0.0
            s = np.clip(-c / a, 0.0, 1.0)
        else:
            b = float(d1 @ d2)
            denom = a * e - b * b
            # parallel segments: any s works, pick the start
            s = np.clip((b * f - c * e) / denom, 0.0, 1.0) if denom > EPSILON else 0.0
            t = (b * s + f) / e
            if t < 0.0:
                t = 0.0
                s = np.clip(-c / a, 0.0, 1.0)
            elif t > 1.0:
                t = 1.0
                s = np.clip((b - c) / a, 0.0, 1.0)
    return p1 + d1 * s, p2 + d2 * t


class CollisionWorld:
    """Ordered set of collision items with pairwise ignore rules."""

    def __init__(self):
        self._items: Dict[str, CollisionItem] = {}
        self._link_names: Dict[str, List[str]] = {}
        self._ignore_pairs: Set[frozenset] = set()
        self.last_result: Optional[CollisionResult] = None
        self.lock = threading.RLock()

    @property
    def items(self) -> List[CollisionItem]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: str) -> bool:
        return name in self._items

    def add_obstacle(self, item: CollisionItem) -> str:
        """Register an item; an item with the same name is replaced in place."""
        with self.lock:
            self._items[item.name] = item
        logger.debug(f"Collision item '{item.name}' registered (radius={item.radius})")
        return item.name

    def remove(self, name: str):
        with self.lock:
            self._items.pop(name, None)
            for names in self._link_names.values():
                if name in names:
                    names.remove(name)

    def clear(self):
        with self.lock:
            self._items.clear()
            self._link_names = {}
            self._ignore_pairs.clear()
            self.last_result = None

    def add_ignore_pair(self, name_a: str, name_b: str):
        with self.lock:
            self._ignore_pairs.add(frozenset((name_a, name_b)))

    def is_ignored(self, a: CollisionItem, b: CollisionItem) -> bool:
        return a.ignores(b) or frozenset((a.name, b.name)) in self._ignore_pairs

    def update_links(self, items: Iterable[CollisionItem], owner: str = "arm"):
        """Replace the link segments ``owner`` registered on its previous tick."""
        items = list(items)
        new_names = [item.name for item in items]
        with self.lock:
            for name in self._link_names.get(owner, []):
                if name not in new_names:
                    self._items.pop(name, None)
            for item in items:
                self._items[item.name] = item
            self._link_names[owner] = new_names

    @staticmethod
    def link_items(names: List[str], joint_positions: np.ndarray,
                   radius: float = 0.0) -> List[CollisionItem]:
        """
        Build one segment per link from consecutive joint positions.

        Each link ignores the link that follows it, since adjacent links share
        a joint. Zero-length links are left out and the preceding link ignores
        the next real one instead.

        Args:
            names: Joint names, base to tip
            joint_positions: (n+1)x3 array of link endpoints, origin first
            radius: Capsule radius of every link

        Returns:
            List of collision items
        """
        items: List[CollisionItem] = []
        for i, name in enumerate(names):
            origin, end = joint_positions[i], joint_positions[i + 1]
            if np.linalg.norm(end - origin) <= EPSILON:
                continue
            if items:
                items[-1].add_ignore(name)
            items.append(CollisionItem(name, origin, end, radius))
        return items

    def evaluate(self) -> Optional[CollisionResult]:
        """
        Test every item pair for intersection.

        Returns:
            The first colliding pair in registration order, or None
        """
        with self.lock:
            items = list(self._items.values())
            self.last_result = None
            for i, a in enumerate(items):
                for b in items[i + 1:]:
                    if self.is_ignored(a, b):
                        continue
                    point_a, point_b = closest_points(a.origin, a.end, b.origin, b.end)
                    distance = float(np.linalg.norm(point_a - point_b))
                    if distance <= a.radius + b.radius:
                        self.last_result = CollisionResult(a, b, point_a, point_b, distance)
                        return self.last_result
            return None

    def have_collision(self) -> bool:
        return self.last_result is not None
