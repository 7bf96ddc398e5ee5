"""Doors, keys and gems gridworld.

The agent walks on a grid, picks up keys and gems, and spends a key to unlock
an adjacent door. It serves as the state-transition collaborator for the
goal-inference experiments and tests: states are hashable and expose named
observable features (``xpos``, ``ypos``, ``has:<item>``, ``locked:<door>``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, List, Sequence, Tuple

Position = Tuple[int, int]

MOVES: Dict[str, Position] = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}


@dataclass(frozen=True)
class HasItem:
    """Goal: hold the named item."""

    item: str

    def __str__(self) -> str:
        return f"(has {self.item})"


@dataclass(frozen=True)
class AtPosition:
    """Goal: stand on a cell."""

    x: int
    y: int

    def __str__(self) -> str:
        return f"(at {self.x} {self.y})"


@dataclass(frozen=True)
class GridState:
    """Full environment state. Immutable and hashable."""

    pos: Position
    held: FrozenSet[str] = frozenset()
    used: FrozenSet[str] = frozenset()
    locked: FrozenSet[str] = frozenset()
    items: Tuple[str, ...] = field(default=(), compare=False)
    doors: Tuple[str, ...] = field(default=(), compare=False)

    def features(self) -> Dict[str, object]:
        """All observable features of this state."""
        out: Dict[str, object] = {"xpos": float(self.pos[0]), "ypos": float(self.pos[1])}
        for item in self.items:
            out[f"has:{item}"] = item in self.held
        for door in self.doors:
            out[f"locked:{door}"] = door in self.locked
        return out

    def __getitem__(self, feature: str) -> object:
        feats = self.features()
        if feature not in feats:
            raise KeyError(feature)
        return feats[feature]

    def __contains__(self, feature: object) -> bool:
        return feature in self.features()

    def __iter__(self) -> Iterator[str]:
        return iter(self.features())


@dataclass(frozen=True)
class GridLayout:
    """Static layout: walls, doors, keys and gems by name."""

    width: int
    height: int
    walls: FrozenSet[Position] = frozenset()
    doors: Tuple[Tuple[str, Position], ...] = ()
    keys: Tuple[Tuple[str, Position], ...] = ()
    gems: Tuple[Tuple[str, Position], ...] = ()
    start: Position = (0, 0)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Grid dimensions must be positive.")
        for name, pos in self.doors + self.keys + self.gems + (("start", self.start),):
            if not (0 <= pos[0] < self.width and 0 <= pos[1] < self.height):
                raise ValueError(f"{name} at {pos} lies outside the grid.")
            if pos in self.walls:
                raise ValueError(f"{name} at {pos} is inside a wall.")

    @classmethod
    def from_rows(cls, rows: Sequence[str]) -> "GridLayout":
        """Parse an ASCII layout.

        ``W`` wall, ``D`` locked door, ``k`` key, ``g`` gem, ``s`` start,
        ``.`` floor. Objects are numbered in row-major order (key1, gem1, ...).
        """
        if not rows or len({len(r) for r in rows}) != 1:
            raise ValueError("Layout rows must be non-empty and of equal length.")
        walls, doors, keys, gems = set(), [], [], []
        start = None
        for y, row in enumerate(rows):
            for x, ch in enumerate(row):
                if ch == "W":
                    walls.add((x, y))
                elif ch == "D":
                    doors.append((f"door{len(doors) + 1}", (x, y)))
                elif ch == "k":
                    keys.append((f"key{len(keys) + 1}", (x, y)))
                elif ch == "g":
                    gems.append((f"gem{len(gems) + 1}", (x, y)))
                elif ch == "s":
                    start = (x, y)
                elif ch != ".":
                    raise ValueError(f"Unknown layout symbol {ch!r} at {(x, y)}.")
        if start is None:
            raise ValueError("Layout needs a start cell 's'.")
        return cls(
            width=len(rows[0]),
            height=len(rows),
            walls=frozenset(walls),
            doors=tuple(doors),
            keys=tuple(keys),
            gems=tuple(gems),
            start=start,
        )


class GridWorld:
    """Deterministic doors/keys/gems domain."""

    def __init__(self, layout: GridLayout):
        self.layout = layout
        self._door_pos = dict(layout.doors)
        self._item_pos = dict(layout.keys + layout.gems)
        self._keys = frozenset(name for name, _ in layout.keys)
        self._items = tuple(name for name, _ in layout.keys + layout.gems)
        self._door_names = tuple(name for name, _ in layout.doors)

    @property
    def items(self) -> Tuple[str, ...]:
        return self._items

    @property
    def door_names(self) -> Tuple[str, ...]:
        return self._door_names

    def initial_state(self) -> GridState:
        return GridState(
            pos=self.layout.start,
            locked=frozenset(self._door_names),
            items=self._items,
            doors=self._door_names,
        )

    def _blocked(self, state: GridState, pos: Position) -> bool:
        x, y = pos
        if not (0 <= x < self.layout.width and 0 <= y < self.layout.height):
            return True
        if pos in self.layout.walls:
            return True
        return any(self._door_pos[d] == pos for d in state.locked)

    def _adjacent(self, a: Position, b: Position) -> bool:
        return abs(a[0] - b[0]) + abs(a[1] - b[1]) == 1

    def available(self, state: GridState, action: str) -> bool:
        if action in MOVES:
            dx, dy = MOVES[action]
            return not self._blocked(state, (state.pos[0] + dx, state.pos[1] + dy))
        verb, _, obj = action.partition(":")
        if verb == "pickup":
            return (
                obj in self._item_pos
                and obj not in state.held
                and obj not in state.used
                and self._item_pos[obj] == state.pos
            )
        if verb == "unlock":
            return (
                obj in state.locked
                and self._adjacent(state.pos, self._door_pos[obj])
                and any(k in state.held for k in self._keys)
            )
        return False

    def transition(self, state: GridState, action: str) -> GridState:
        if not self.available(state, action):
            raise ValueError(f"Action {action!r} is not available in {state}.")
        if action in MOVES:
            dx, dy = MOVES[action]
            return GridState(
                pos=(state.pos[0] + dx, state.pos[1] + dy),
                held=state.held,
                used=state.used,
                locked=state.locked,
                items=state.items,
                doors=state.doors,
            )
        verb, _, obj = action.partition(":")
        if verb == "pickup":
            return GridState(
                pos=state.pos,
                held=state.held | {obj},
                used=state.used,
                locked=state.locked,
                items=state.items,
                doors=state.doors,
            )
        # unlock spends the first held key
        key = sorted(k for k in state.held if k in self._keys)[0]
        return GridState(
            pos=state.pos,
            held=state.held - {key},
            used=state.used | {key},
            locked=state.locked - {obj},
            items=state.items,
            doors=state.doors,
        )

    def available_actions(self, state: GridState) -> List[str]:
        candidates = list(MOVES)
        candidates += [f"pickup:{item}" for item in self._items]
        candidates += [f"unlock:{door}" for door in self._door_names]
        return [a for a in candidates if self.available(state, a)]

    def goal_satisfied(self, state: GridState, goal) -> bool:
        if isinstance(goal, HasItem):
            return goal.item in state.held
        if isinstance(goal, AtPosition):
            return state.pos == (goal.x, goal.y)
        raise TypeError(f"Unsupported goal {goal!r}.")

    def heuristic(self, state: GridState, goal) -> float:
        """Manhattan distance to the goal cell, ignoring walls and doors."""
        if self.goal_satisfied(state, goal):
            return 0.0
        if isinstance(goal, HasItem):
            if goal.item in state.used:
                return float("inf")
            tx, ty = self._item_pos[goal.item]
            # one extra step for the pickup itself
            return float(abs(state.pos[0] - tx) + abs(state.pos[1] - ty) + 1)
        return float(abs(state.pos[0] - goal.x) + abs(state.pos[1] - goal.y))
