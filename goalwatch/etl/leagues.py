"""League configurations and target goal lines for the BetsAPI eSoccer feed."""

import re
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class LeagueTarget:
    """League configuration: the Asian goal line that counts as a detection."""

    league_id: int
    name: str
    target_line: float
    name_pattern: Optional[str] = None  # Matches the feed's league name when the id differs
    _regex: Optional[re.Pattern] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.name_pattern:
            self._regex = re.compile(self.name_pattern, re.IGNORECASE)

    def matches_name(self, league_name: str) -> bool:
        return bool(self._regex and league_name and self._regex.search(league_name))


GT_LEAGUE = LeagueTarget(
    league_id=23114,
    name="GT League",
    target_line=2.5,
    name_pattern=r"esoccer.*gt.*league",
)

H2H_GG_LEAGUE = LeagueTarget(
    league_id=37298,
    name="H2H GG League",
    target_line=1.5,
    name_pattern=r"esoccer.*h2h.*gg.*league",
)

BATTLE_VOLTA = LeagueTarget(
    league_id=38439,
    name="Battle Volta",
    target_line=3.5,
    name_pattern=r"esoccer.*battle.*volta",
)

BATTLE_8MIN = LeagueTarget(
    league_id=22614,
    name="Battle 8min",
    target_line=3.5,
    name_pattern=r"esoccer.*battle.*8.*min",
)

DEFAULT_LEAGUES: dict[int, LeagueTarget] = {
    league.league_id: league
    for league in [GT_LEAGUE, H2H_GG_LEAGUE, BATTLE_VOLTA, BATTLE_8MIN]
}


class LeagueRegistry:
    """Read-only lookup of tracked leagues and their target lines."""

    def __init__(
        self,
        leagues: dict[int, LeagueTarget],
        default_target_line: float = 1.5,
    ):
        self._leagues = dict(leagues)
        self.default_target_line = default_target_line

    @classmethod
    def from_config(
        cls,
        league_ids: list[int],
        target_lines: dict[int, float],
        default_target_line: float = 1.5,
    ) -> "LeagueRegistry":
        """
        Build the registry from configured ids and per-league line overrides.

        Known leagues keep their name and pattern; unknown ids get a generic
        name and no pattern.
        """
        leagues = {}
        for league_id in league_ids:
            known = DEFAULT_LEAGUES.get(league_id)
            leagues[league_id] = LeagueTarget(
                league_id=league_id,
                name=known.name if known else f"League {league_id}",
                target_line=target_lines.get(
                    league_id, known.target_line if known else default_target_line
                ),
                name_pattern=known.name_pattern if known else None,
            )
        return cls(leagues, default_target_line=default_target_line)

    @property
    def league_ids(self) -> list[int]:
        return list(self._leagues.keys())

    def all(self) -> list[LeagueTarget]:
        return list(self._leagues.values())

    def get(self, league_id: int) -> Optional[LeagueTarget]:
        return self._leagues.get(league_id)

    def target_line(self, league_id: int) -> float:
        league = self._leagues.get(league_id)
        return league.target_line if league else self.default_target_line

    def name(self, league_id: int) -> str:
        league = self._leagues.get(league_id)
        return league.name if league else f"League {league_id}"

    def match(self, league_id: Optional[int], league_name: str = "") -> Optional[LeagueTarget]:
        """Resolve a feed league to a tracked league: by id first, then by name pattern."""
        if league_id is not None and league_id in self._leagues:
            return self._leagues[league_id]
        for league in self._leagues.values():
            if league.matches_name(league_name):
                return league
        return None
