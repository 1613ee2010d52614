"""Live goal line tracking: resolution, per-match state machine, history, retention."""

from goalwatch.tracking.observations import UNAVAILABLE, LineObservation, Unavailable
from goalwatch.tracking.state_machine import MatchState, Transition, complete, transition

__all__ = [
    "LineObservation",
    "Unavailable",
    "UNAVAILABLE",
    "MatchState",
    "Transition",
    "transition",
    "complete",
]
