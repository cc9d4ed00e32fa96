"""
Profile service

Aggregates a member's profile page: current rating, global rank, category and
match history from both regular and tournament play.
"""

from typing import List
import logging

from sqlalchemy import select

from club.data_models.profile import ProfileData, MatchRecord
from club.database.models import Member, RatingHistory
from club.services.base import BaseService
from club.services.leaderboard import LeaderboardService
from club.utils.exceptions import MemberNotFoundError

logger = logging.getLogger(__name__)


class ProfileService(BaseService):
    """Service for aggregating member profile data."""

    def __init__(self, session_factory, leaderboard_service: LeaderboardService):
        super().__init__(session_factory)
        self.leaderboard_service = leaderboard_service

    async def get_profile_data(self, identity: str) -> ProfileData:
        """
        Fetch complete profile data for a member.

        Raises:
            MemberNotFoundError: If the identity has no member record
        """
        async with self.read_session("get_profile_data") as session:
            result = await session.execute(select(Member).where(Member.identity == identity))
            member = result.scalar_one_or_none()
            if member is None:
                raise MemberNotFoundError(identity)

            history = await self._fetch_match_history(session, identity)

        categories = await self.leaderboard_service.get_category_leaderboards()
        rank, category_name, total = 0, "", 0
        for category in categories:
            total += category.size
            for entry in category.entries:
                if entry.identity == identity:
                    rank, category_name = entry.rank, category.name

        return ProfileData(
            identity=member.identity,
            name=member.name,
            photo=member.photo,
            elo_rating=member.elo_rating,
            rank=rank,
            total_members=total,
            category=category_name,
            matches_played=member.matches_played or 0,
            wins=member.wins or 0,
            losses=member.losses or 0,
            win_rate=member.win_rate,
            match_history=history,
            registered_at=member.registered_at
        )

    async def _fetch_match_history(self, session, identity: str) -> List[MatchRecord]:
        result = await session.execute(
            select(RatingHistory)
            .where(RatingHistory.identity == identity)
            .order_by(RatingHistory.recorded_at.desc(), RatingHistory.id.desc())
        )
        rows = list(result.scalars().all())

        opponents = {row.opponent for row in rows}
        names = {}
        if opponents:
            result = await session.execute(
                select(Member.identity, Member.name).where(Member.identity.in_(opponents))
            )
            names = {opponent: name for opponent, name in result.all()}

        return [
            MatchRecord(
                opponent=row.opponent,
                # Deleted members fall back to their identity
                opponent_name=names.get(row.opponent, row.opponent),
                own_score=row.own_score,
                opponent_score=row.opponent_score,
                result=row.result.value,
                rating_change=row.rating_change,
                new_rating=row.new_rating,
                match_kind=row.match_kind.value,
                played_at=row.recorded_at
            )
            for row in rows
        ]
