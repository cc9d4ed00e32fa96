"""
Match data models.

Immutable data transfer objects describing the outcome of applying a match
to the Member Store.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RatingOutcome:
    """Rating changes applied to both players for one approved match."""
    player_a: str
    player_b: str
    k_factor_a: int
    k_factor_b: int
    rating_change_a: int
    rating_change_b: int
    old_rating_a: int
    old_rating_b: int
    new_rating_a: int
    new_rating_b: int
