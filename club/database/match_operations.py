"""
Match Operations Module - regular ladder matches

Submission / approval / rejection workflow for regular matches:

    pending --approve--> approved   (ratings applied, history appended)
    pending --reject---> rejected   (ratings untouched)

approved and rejected are terminal. Approval is the only operation here that
touches ratings; it runs under Database.rating_lock inside a single
transaction and flips the status with a compare-and-set UPDATE, so a match is
rated exactly once even when two approvals race.

Authorization:
- submit: the caller must be player A, unless they hold score authority
  (admin or score authentication admin), who may submit for any two members
- approve / reject: player B (the opponent), or anyone with score authority;
  player A can never approve their own submission without that authority
"""

from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from club.config import Config
from club.database.models import Match, MatchStatus, MatchKind, Member
from club.utils.exceptions import (
    ClubError, DatabaseError, ForbiddenError, InvalidInputError, InvalidScoreError,
    MatchNotFoundError, MemberNotFoundError, SelfApprovalError, ConflictError
)
from club.utils.logger import setup_logger

logger = setup_logger(__name__)


def validate_rejection_reason(reason: Optional[str], required: bool) -> Optional[str]:
    """
    Normalize a rejection reason.

    Returns the stripped reason, or None when optional and blank.

    Raises:
        InvalidInputError: If required and blank, or longer than the limit
    """
    cleaned = (reason or "").strip()
    if not cleaned:
        if required:
            raise InvalidInputError(
                "Rejection reason is required",
                "❌ Please provide a rejection reason."
            )
        return None
    if len(cleaned) > Config.MAX_REJECTION_REASON_LENGTH:
        raise InvalidInputError(
            f"Rejection reason exceeds {Config.MAX_REJECTION_REASON_LENGTH} characters",
            f"❌ Rejection reason must be at most {Config.MAX_REJECTION_REASON_LENGTH} characters."
        )
    return cleaned


async def authorize_match_resolution(access, session: AsyncSession, caller: str,
                                     player_a: str, player_b: str) -> None:
    """
    Only the opponent (player B) or a score authority may approve or reject.

    Raises:
        SelfApprovalError: Player A trying to resolve their own submission
        ForbiddenError: Anyone else without score authority
    """
    if caller == player_b:
        return
    if await access.has_score_authority(caller, session):
        return
    logger.warning(f"{caller} denied resolving match between {player_a} and {player_b}")
    if caller == player_a:
        raise SelfApprovalError(caller)
    raise ForbiddenError(
        f"{caller} is not the opponent in this match",
        "❌ Only your opponent or an admin can approve or reject this match."
    )


class MatchOperations:
    """
    Core service class for the regular match workflow.

    Provides atomic, transactional operations for the match lifecycle.
    """

    def __init__(self, database, access_control):
        """Initialize with database instance and access control"""
        self.db = database
        self.access = access_control
        self.logger = logger

    # ============================================================================
    # Submission
    # ============================================================================

    async def submit_match(
        self,
        caller: str,
        player_a: str,
        player_b: str,
        score_a: int,
        score_b: int
    ) -> Match:
        """
        Submit a regular match result for approval.

        Args:
            caller: Identity of the submitter
            player_a: Player A (normally the submitter)
            player_b: Player B, the opponent who must approve
            score_a: Games won by player A
            score_b: Games won by player B

        Returns:
            Match: The new pending match

        Raises:
            InvalidInputError: Same player twice, tie or negative score
            ForbiddenError: Proxy submission without score authority
            MemberNotFoundError: Either player is not a member
            ConflictError: Another submission for this pair at the same instant
        """
        if not player_a or not player_b:
            raise InvalidInputError("Both players are required", "❌ Please select both players.")
        if player_a == player_b:
            raise InvalidInputError(
                f"Player {player_a} cannot play against themselves",
                "❌ You cannot submit a match against yourself."
            )
        self._validate_regular_score(score_a, score_b)

        try:
            async with self.db.transaction() as session:
                if caller != player_a and not await self.access.has_score_authority(caller, session):
                    self.logger.warning(f"{caller} tried to submit a match on behalf of {player_a}")
                    raise ForbiddenError(
                        f"{caller} cannot submit matches on behalf of {player_a}",
                        "❌ You can only submit matches you played in."
                    )

                for identity in (player_a, player_b):
                    result = await session.execute(select(Member.id).where(Member.identity == identity))
                    if result.scalar_one_or_none() is None:
                        raise MemberNotFoundError(identity)

                match = Match(
                    player_a=player_a,
                    player_b=player_b,
                    score_a=score_a,
                    score_b=score_b,
                    status=MatchStatus.PENDING,
                    submitted_by=caller,
                    submitted_at=datetime.now(timezone.utc)
                )
                session.add(match)
                await session.flush()

            self.logger.info(
                f"Match {match.id} submitted by {caller}: {player_a} {score_a}-{score_b} {player_b}"
            )
            return match

        except IntegrityError as e:
            self.logger.warning(f"Duplicate match submission for {player_a} vs {player_b}: {e}")
            raise ConflictError(
                f"A match for {player_a} vs {player_b} was submitted at the same time",
                "❌ A match was just submitted for these players. Please try again."
            )
        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to submit match {player_a} vs {player_b}: {e}")
            raise DatabaseError("submit_match", str(e))

    async def submit_match_score(self, caller: str, opponent: str, score_a: int, score_b: int) -> Match:
        """Submit a match where the caller is player A"""
        return await self.submit_match(caller, caller, opponent, score_a, score_b)

    def _validate_regular_score(self, score_a: int, score_b: int) -> None:
        if not isinstance(score_a, int) or not isinstance(score_b, int) or isinstance(score_a, bool) or isinstance(score_b, bool):
            raise InvalidScoreError(score_a, score_b, "Scores must be whole numbers.")
        if score_a < 0 or score_b < 0:
            raise InvalidScoreError(score_a, score_b, "Scores cannot be negative.")
        if score_a == score_b:
            raise InvalidScoreError(score_a, score_b, "Matches cannot end in a tie.")

    # ============================================================================
    # Approval / rejection
    # ============================================================================

    async def approve_match(self, caller: str, match_id: int) -> Match:
        """
        Approve a pending match and apply the Elo update to both players.

        K-factors come from each player's approved-match count at approval
        time. Ratings, history and the status flip commit together.

        Raises:
            MatchNotFoundError: No pending match with that id
            ForbiddenError: Caller is neither player B nor a score authority
            MemberNotFoundError: A player was deleted while the match was pending
        """
        try:
            async with self.db.rating_lock:
                async with self.db.transaction() as session:
                    match = await self._load_pending_match(session, match_id)
                    await authorize_match_resolution(self.access, session, caller, match.player_a, match.player_b)

                    outcome = await self.db.record_rated_match(
                        session,
                        match.player_a,
                        match.player_b,
                        match.score_a,
                        match.score_b,
                        MatchKind.REGULAR,
                        match_id=match.id
                    )

                    now = datetime.now(timezone.utc)
                    result = await session.execute(
                        update(Match)
                        .where(Match.id == match_id, Match.status == MatchStatus.PENDING)
                        .values(
                            status=MatchStatus.APPROVED,
                            k_factor=outcome.k_factor_a,
                            rating_change_a=outcome.rating_change_a,
                            rating_change_b=outcome.rating_change_b,
                            resolved_by=caller,
                            resolved_at=now
                        )
                    )
                    if result.rowcount == 0:
                        # Lost the race; roll back the rating changes
                        raise MatchNotFoundError(match_id)

                    await session.refresh(match)

            self.logger.info(
                f"Match {match_id} approved by {caller}, winner {match.winner}: "
                f"{match.player_a} {outcome.rating_change_a:+d}, {match.player_b} {outcome.rating_change_b:+d}"
            )
            return match

        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to approve match {match_id}: {e}")
            raise DatabaseError("approve_match", str(e))

    async def reject_match(self, caller: str, match_id: int, reason: Optional[str]) -> Match:
        """
        Reject a pending match. Ratings are not touched.

        Raises:
            InvalidInputError: Missing or over-long reason
            MatchNotFoundError: No pending match with that id
            ForbiddenError: Caller is neither player B nor a score authority
        """
        cleaned_reason = validate_rejection_reason(reason, required=True)

        try:
            async with self.db.transaction() as session:
                match = await self._load_pending_match(session, match_id)
                await authorize_match_resolution(self.access, session, caller, match.player_a, match.player_b)

                result = await session.execute(
                    update(Match)
                    .where(Match.id == match_id, Match.status == MatchStatus.PENDING)
                    .values(
                        status=MatchStatus.REJECTED,
                        rejection_reason=cleaned_reason,
                        resolved_by=caller,
                        resolved_at=datetime.now(timezone.utc)
                    )
                )
                if result.rowcount == 0:
                    raise MatchNotFoundError(match_id)

                await session.refresh(match)

            self.logger.info(f"Match {match_id} rejected by {caller}: {cleaned_reason}")
            return match

        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to reject match {match_id}: {e}")
            raise DatabaseError("reject_match", str(e))

    async def _load_pending_match(self, session: AsyncSession, match_id: int) -> Match:
        result = await session.execute(
            select(Match)
            .where(Match.id == match_id, Match.status == MatchStatus.PENDING)
            .with_for_update()
        )
        match = result.scalar_one_or_none()
        if match is None:
            raise MatchNotFoundError(match_id)
        return match

    # ============================================================================
    # Queries
    # ============================================================================

    async def get_match(self, match_id: int) -> Optional[Match]:
        async with self.db.get_session() as session:
            result = await session.execute(select(Match).where(Match.id == match_id))
            return result.scalar_one_or_none()

    async def get_pending_matches(self, identity: Optional[str] = None) -> List[Match]:
        """
        Get pending matches, oldest first.

        Args:
            identity: If given, only matches this player is part of
        """
        async with self.db.get_session() as session:
            query = select(Match).where(Match.status == MatchStatus.PENDING)
            if identity:
                query = query.where(or_(Match.player_a == identity, Match.player_b == identity))
            result = await session.execute(query.order_by(Match.submitted_at, Match.id))
            return list(result.scalars().all())

    async def get_approved_matches(self, limit: Optional[int] = None) -> List[Match]:
        """Approved matches, most recently approved first"""
        async with self.db.get_session() as session:
            query = (
                select(Match)
                .where(Match.status == MatchStatus.APPROVED)
                .order_by(Match.resolved_at.desc(), Match.id.desc())
            )
            if limit:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_player_matches(self, identity: str) -> List[Match]:
        """Every regular match a player took part in, any status, newest first"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Match)
                .where(or_(Match.player_a == identity, Match.player_b == identity))
                .order_by(Match.submitted_at.desc(), Match.id.desc())
            )
            return list(result.scalars().all())
