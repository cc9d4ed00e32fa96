"""
Leaderboard data models

Immutable data transfer objects for the leaderboard, skill categories and
member directory. These are recomputed on every request.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row. rank is the global 1-based rank."""
    rank: int
    identity: str
    name: str
    elo_rating: int
    wins: int
    losses: int
    matches_played: int
    photo: Optional[bytes] = None


@dataclass(frozen=True)
class CategoryLeaderboard:
    """One of the eight skill categories, entries keep their global rank."""
    name: str
    entries: List[LeaderboardEntry]

    @property
    def size(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class DirectoryEntry:
    """Member directory row; unclaimed records have rank 0 and no identity."""
    name: str
    elo_rating: int
    is_claimed: bool
    rank: int = 0
    identity: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class TournamentLeaderboardEntry:
    rank: int
    identity: str
    name: str
    points: int
    wins: int
    losses: int
    games_won: int
    games_lost: int

    @property
    def game_difference(self) -> int:
        return self.games_won - self.games_lost
