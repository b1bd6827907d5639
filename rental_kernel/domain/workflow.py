"""
State machine declarations.

A ``Workflow`` is a table of legal edges between named states.  The
lease lifecycle is declared with one, so a service asks the table
whether a move is legal instead of encoding the rules in if-chains.

Kernel > Domain: pure values, no I/O, no imports from outer layers.
"""

from __future__ import annotations

from dataclasses import dataclass

# Source state matching every non-terminal state
WILDCARD = "*"


@dataclass(frozen=True)
class Guard:
    """Named precondition of an edge.  The owning service checks it."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None

    def leaves(self, state: str) -> bool:
        return self.from_state == WILDCARD or self.from_state == state


@dataclass(frozen=True)
class Workflow:
    """
    Nothing leaves a terminal state, not even a wildcard edge.

    Raises ValueError on construction when the initial state or an edge
    endpoint is not one of ``states``.
    """

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(
                f"{self.name}: initial state {self.initial_state!r} not in states"
            )
        for edge in self.transitions:
            if edge.from_state not in known | {WILDCARD}:
                raise ValueError(f"{self.name}: from_state {edge.from_state!r} not in states")
            if edge.to_state not in known:
                raise ValueError(f"{self.name}: to_state {edge.to_state!r} not in states")

    def _edges_from(self, state: str) -> list[Transition]:
        if state in self.terminal_states:
            return []
        return [edge for edge in self.transitions if edge.leaves(state)]

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """The first edge ``from_state -> to_state``, or None when illegal."""
        return next(
            (edge for edge in self._edges_from(from_state) if edge.to_state == to_state),
            None,
        )

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        """Other states reachable in one step."""
        return tuple(
            edge.to_state
            for edge in self._edges_from(from_state)
            if edge.to_state != from_state
        )
