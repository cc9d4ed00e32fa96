"""
Leaderboard service

Read-side projection over the Member Store: the global leaderboard, the eight
skill categories, the member directory and the tournament standings.

Nothing here is cached or written back to Member rows; every call reflects
the latest committed ratings and claim state.
"""

from typing import List, Optional, Sequence
import logging

from sqlalchemy import select

from club.constants import CategoryConstants
from club.data_models.leaderboard import (
    LeaderboardEntry, CategoryLeaderboard, DirectoryEntry, TournamentLeaderboardEntry
)
from club.database.models import Member, ClaimRecord, TournamentPlayerStats
from club.services.base import BaseService

logger = logging.getLogger(__name__)


def leaderboard_sort_key(member: Member):
    """Rating descending, then name case-insensitively, then identity"""
    return (-member.elo_rating, member.name.casefold(), member.identity)


def partition_sizes(total: int, parts: int = CategoryConstants.CATEGORY_COUNT) -> List[int]:
    """
    Split total into parts contiguous group sizes that differ by at most one.

    The remainder goes to the front (highest rated) groups.
    """
    base, remainder = divmod(total, parts)
    return [base + 1 if i < remainder else base for i in range(parts)]


def partition_into_categories(entries: Sequence[LeaderboardEntry]) -> List[CategoryLeaderboard]:
    categories = []
    start = 0
    for name, size in zip(CategoryConstants.CATEGORY_NAMES, partition_sizes(len(entries))):
        categories.append(CategoryLeaderboard(name=name, entries=list(entries[start:start + size])))
        start += size
    return categories


class LeaderboardService(BaseService):
    """Service for leaderboard, category and directory queries."""

    def __init__(self, session_factory):
        super().__init__(session_factory)

    async def _load_members(self, session) -> List[Member]:
        result = await session.execute(select(Member))
        return sorted(result.scalars().all(), key=leaderboard_sort_key)

    @staticmethod
    def _to_entry(rank: int, member: Member) -> LeaderboardEntry:
        return LeaderboardEntry(
            rank=rank,
            identity=member.identity,
            name=member.name,
            elo_rating=member.elo_rating,
            wins=member.wins or 0,
            losses=member.losses or 0,
            matches_played=member.matches_played or 0,
            photo=member.photo
        )

    async def get_leaderboard(self) -> List[LeaderboardEntry]:
        """All claimed members ranked by rating"""
        async with self.read_session("get_leaderboard") as session:
            members = await self._load_members(session)
        return [self._to_entry(rank, m) for rank, m in enumerate(members, start=1)]

    async def get_category_leaderboards(self) -> List[CategoryLeaderboard]:
        """
        The global leaderboard cut into the eight skill categories.

        Concatenating the categories in order gives back the global
        leaderboard exactly.
        """
        return partition_into_categories(await self.get_leaderboard())

    async def get_member_category(self, identity: str) -> Optional[str]:
        """Category name of a member, or None if they are not on the leaderboard"""
        for category in await self.get_category_leaderboards():
            if any(entry.identity == identity for entry in category.entries):
                return category.name
        return None

    async def get_member_directory(self) -> List[DirectoryEntry]:
        """
        Claimed members in leaderboard order, followed by unclaimed claim
        records sorted by name.
        """
        categories = await self.get_category_leaderboards()

        directory = [
            DirectoryEntry(
                name=entry.name,
                elo_rating=entry.elo_rating,
                is_claimed=True,
                rank=entry.rank,
                identity=entry.identity,
                category=category.name
            )
            for category in categories
            for entry in category.entries
        ]

        async with self.read_session("get_member_directory") as session:
            result = await session.execute(select(ClaimRecord))
            records = sorted(result.scalars().all(), key=lambda r: (r.name.casefold(), r.id))

        directory.extend(
            DirectoryEntry(name=r.name, elo_rating=r.elo_rating, is_claimed=False)
            for r in records
        )
        return directory

    async def get_tournament_leaderboard(self) -> List[TournamentLeaderboardEntry]:
        """
        Tournament standings: points, then wins, then game difference, then
        name. Players whose member record was deleted keep their identity as
        their name.
        """
        async with self.read_session("get_tournament_leaderboard") as session:
            result = await session.execute(select(TournamentPlayerStats))
            stats = list(result.scalars().all())

            result = await session.execute(select(Member.identity, Member.name))
            names = {identity: name for identity, name in result.all()}

        def sort_key(s: TournamentPlayerStats):
            name = names.get(s.identity, s.identity)
            return (-(s.points or 0), -(s.wins or 0), -s.game_difference, name.casefold(), s.identity)

        standings = []
        for rank, s in enumerate(sorted(stats, key=sort_key), start=1):
            standings.append(TournamentLeaderboardEntry(
                rank=rank,
                identity=s.identity,
                name=names.get(s.identity, s.identity),
                points=s.points or 0,
                wins=s.wins or 0,
                losses=s.losses or 0,
                games_won=s.games_won or 0,
                games_lost=s.games_lost or 0
            ))

        logger.debug(f"Built tournament leaderboard with {len(standings)} players")
        return standings
