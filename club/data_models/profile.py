"""
Profile data models

Immutable data transfer objects for a member's profile page.
"""

from dataclasses import dataclass
from typing import List, Optional
from datetime import datetime


@dataclass(frozen=True)
class MatchRecord:
    """Single match history entry, seen from the member's side."""
    opponent: str
    opponent_name: str
    own_score: int
    opponent_score: int
    result: str  # 'win' or 'loss'
    rating_change: int
    new_rating: int
    match_kind: str  # 'regular' or 'tournament'
    played_at: datetime


@dataclass(frozen=True)
class ProfileData:
    """Complete profile data for a member."""
    identity: str
    name: str
    photo: Optional[bytes]

    elo_rating: int
    rank: int
    total_members: int
    category: str

    matches_played: int
    wins: int
    losses: int
    win_rate: float

    match_history: List[MatchRecord]  # Newest first
    registered_at: Optional[datetime] = None
