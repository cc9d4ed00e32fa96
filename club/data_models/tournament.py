"""
Tournament data models.

Immutable snapshots of the tournament returned to callers, so nothing
outside a transaction ever holds a live row.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class RegisteredPlayer:
    """A member registered for the tournament."""
    identity: str
    name: str
    rating: int
    photo: Optional[bytes] = None


@dataclass(frozen=True)
class TournamentMatchView:
    """One best-of-three match inside a round."""
    round_number: int
    index: int
    player_a: str
    player_b: str
    score_a: int
    score_b: int
    table_number: int
    status: str
    rejection_reason: Optional[str]
    submitted_at: datetime
    rating_change_a: int = 0
    rating_change_b: int = 0


@dataclass(frozen=True)
class TournamentRoundView:
    round_number: int
    is_complete: bool
    matches: List[TournamentMatchView] = field(default_factory=list)


@dataclass(frozen=True)
class PlayerStatsView:
    identity: str
    wins: int
    losses: int
    games_won: int
    games_lost: int
    points: int


@dataclass(frozen=True)
class TournamentSnapshot:
    """Complete tournament state."""
    status: str
    current_round: int
    registered_players: List[RegisteredPlayer]
    rounds: List[TournamentRoundView]
    player_stats: List[PlayerStatsView]
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def pending_matches(self) -> List[TournamentMatchView]:
        return [m for r in self.rounds for m in r.matches if m.status == "pending"]
