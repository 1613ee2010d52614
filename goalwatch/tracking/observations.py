"""Goal line observations and the small parsers shared by the tracker."""

import math
from dataclasses import dataclass
from typing import Literal, Optional, Union

SOURCE_PRIMARY = "primary"
SOURCE_FALLBACK = "fallback"
NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class LineObservation:
    """A usable goal line reading for one match."""

    line: float
    over_odds: str = NOT_AVAILABLE
    under_odds: str = NOT_AVAILABLE
    score: Optional[str] = None
    source: Literal["primary", "fallback"] = SOURCE_PRIMARY

    @property
    def over_odds_value(self) -> float:
        """Over price as a number for the history ledger (0.0 when not numeric)."""
        return parse_odds(self.over_odds)


class Unavailable:
    """No usable goal line could be resolved for the match this cycle."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE = Unavailable()

Resolution = Union[LineObservation, Unavailable]


def normalize_line(raw) -> Optional[float]:
    """
    Parse a goal line handicap.

    Accepts "2.5", "+2.5", "2.5,3.0" (split line: first component) and numbers.
    Returns None for anything else.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if "," in text:
            text = text.split(",", 1)[0].strip()
        text = text.lstrip("+")
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if not math.isfinite(value):
        return None
    return value


def parse_odds(raw) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def parse_score(score: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse '2-1' -> (2, 1). Anything that is not two integers returns None."""
    if not score or not isinstance(score, str):
        return None
    parts = score.split("-")
    if len(parts) != 2:
        return None
    try:
        home, away = int(parts[0].strip()), int(parts[1].strip())
    except ValueError:
        return None
    if home < 0 or away < 0:
        return None
    return home, away
