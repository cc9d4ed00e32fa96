"""
Tournament Operations Module

Lifecycle, registration, per-round match workflow and standings for the
club's Swiss-style tournament. There is one tournament at a time, stored as a
singleton TournamentState row.

Lifecycle (admin only):

    notStarted --announce--> announced --start--> active
    active --pause--> paused --resume--> active
    active | paused --end--> completed
    completed --announce--> announced   (clears the previous tournament)
    completed --reset--> notStarted

Tournament matches are best-of-three and follow the same approval rule as
regular matches. Approval applies Elo through the shared Member Store
(Database.record_rated_match) and adds to the standings; ratings are never
recomputed when the tournament ends.
"""

from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from club.config import Config
from club.constants import TournamentConstants
from club.data_models.tournament import (
    RegisteredPlayer, TournamentMatchView, TournamentRoundView, PlayerStatsView, TournamentSnapshot
)
from club.database.match_operations import authorize_match_resolution, validate_rejection_reason
from club.database.models import (
    Member, MatchStatus, MatchKind, RatingHistory, TournamentState, TournamentStatus, TournamentRegistration,
    TournamentRound, TournamentMatch, TournamentPlayerStats
)
from club.utils.exceptions import (
    ClubError, ConflictError, DatabaseError, ForbiddenError, InvalidInputError, InvalidScoreError,
    InvalidStateTransitionError, MatchNotFoundError, MemberNotFoundError,
    NotRegisteredError, AlreadyRegisteredError
)
from club.utils.logger import setup_logger

logger = setup_logger(__name__)

REGISTRATION_OPEN = (TournamentStatus.ANNOUNCED, TournamentStatus.ACTIVE)


def validate_best_of_three(score_a: int, score_b: int) -> None:
    """
    Raises:
        InvalidScoreError: Unless the score is 2-0, 2-1, 1-2 or 0-2
    """
    if (score_a, score_b) not in TournamentConstants.VALID_SCORES:
        raise InvalidScoreError(
            score_a, score_b,
            "Invalid score. Must be best-of-three: 2-0, 2-1, 1-2, or 0-2."
        )


class TournamentOperations:
    """
    Business logic for the club tournament.

    Every mutating operation runs in a single transaction; approvals also
    hold the shared rating lock.
    """

    def __init__(self, database, access_control):
        """Initialize with database instance and access control"""
        self.db = database
        self.access = access_control
        self.logger = logger

    # ============================================================================
    # Lifecycle
    # ============================================================================

    async def _get_state(self, session: AsyncSession) -> TournamentState:
        result = await session.execute(
            select(TournamentState).order_by(TournamentState.id).limit(1).with_for_update()
        )
        state = result.scalar_one_or_none()
        if state is None:
            state = TournamentState(status=TournamentStatus.NOT_STARTED, current_round=0)
            session.add(state)
            await session.flush()
        return state

    async def _transition(
        self,
        caller: str,
        action: str,
        allowed_from: tuple,
        target: TournamentStatus
    ) -> TournamentState:
        """Move the tournament to target if it is currently in one of allowed_from"""
        try:
            async with self.db.transaction() as session:
                await self.access.require_admin(caller, f"{action} the tournament", session)
                state = await self._get_state(session)

                if state.status not in allowed_from:
                    self.logger.warning(f"Rejected '{action}' while tournament is {state.status.value}")
                    raise InvalidStateTransitionError(action, state.status.value)

                previous = state.status
                now = datetime.now(timezone.utc)

                if target == TournamentStatus.ANNOUNCED and previous == TournamentStatus.COMPLETED:
                    await self._clear_tournament_data(session, state)
                elif target == TournamentStatus.ACTIVE and previous == TournamentStatus.ANNOUNCED:
                    state.started_at = now
                    state.current_round = max(state.current_round or 0, 1)
                elif target == TournamentStatus.COMPLETED:
                    state.ended_at = now
                elif target == TournamentStatus.NOT_STARTED:
                    await self._clear_tournament_data(session, state)

                state.status = target
                await self.db.add_audit_log(session, caller, f'tournament_{action}', {
                    'from': previous.value,
                    'to': target.value
                })

            self.logger.info(f"Tournament {action} by {caller}: {previous.value} -> {target.value}")
            return state

        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to {action} the tournament: {e}")
            raise DatabaseError(f"{action}_tournament", str(e))

    async def announce_tournament(self, caller: str) -> TournamentState:
        return await self._transition(
            caller, "announce",
            (TournamentStatus.NOT_STARTED, TournamentStatus.COMPLETED),
            TournamentStatus.ANNOUNCED
        )

    async def start_tournament(self, caller: str) -> TournamentState:
        return await self._transition(
            caller, "start", (TournamentStatus.ANNOUNCED,), TournamentStatus.ACTIVE
        )

    async def pause_tournament(self, caller: str) -> TournamentState:
        return await self._transition(
            caller, "pause", (TournamentStatus.ACTIVE,), TournamentStatus.PAUSED
        )

    async def resume_tournament(self, caller: str) -> TournamentState:
        return await self._transition(
            caller, "resume", (TournamentStatus.PAUSED,), TournamentStatus.ACTIVE
        )

    async def end_tournament(self, caller: str) -> TournamentState:
        return await self._transition(
            caller, "end",
            (TournamentStatus.ACTIVE, TournamentStatus.PAUSED),
            TournamentStatus.COMPLETED
        )

    async def reset_tournament(self, caller: str) -> TournamentState:
        return await self._transition(
            caller, "reset", (TournamentStatus.COMPLETED,), TournamentStatus.NOT_STARTED
        )

    async def _clear_tournament_data(self, session: AsyncSession, state: TournamentState) -> None:
        """Drop registrations, rounds, matches and standings of the previous tournament"""
        # Rating history keeps its rows; only the link to the deleted match goes
        await session.execute(
            update(RatingHistory)
            .where(RatingHistory.tournament_match_id.isnot(None))
            .values(tournament_match_id=None)
        )
        await session.execute(delete(TournamentMatch))
        await session.execute(delete(TournamentRound))
        await session.execute(delete(TournamentRegistration))
        await session.execute(delete(TournamentPlayerStats))
        state.current_round = 0
        state.started_at = None
        state.ended_at = None

    # ============================================================================
    # Registration
    # ============================================================================

    async def register_for_tournament(self, caller: str) -> None:
        await self._register(caller, caller)

    async def unregister_from_tournament(self, caller: str) -> None:
        await self._unregister(caller, caller)

    async def add_player_to_tournament(self, caller: str, identity: str) -> None:
        """Admin registration on behalf of a member"""
        await self.access.require_admin(caller, "register other players")
        await self._register(caller, identity)

    async def remove_player_from_tournament(self, caller: str, identity: str) -> None:
        await self.access.require_admin(caller, "unregister other players")
        await self._unregister(caller, identity)

    async def _register(self, caller: str, identity: str) -> None:
        try:
            async with self.db.transaction() as session:
                state = await self._get_state(session)
                if state.status not in REGISTRATION_OPEN:
                    raise InvalidStateTransitionError("accept registrations", state.status.value)

                if await self.db.get_member_by_identity(identity, session) is None:
                    raise MemberNotFoundError(identity)

                if await self._is_registered(session, identity):
                    raise AlreadyRegisteredError(identity)

                session.add(TournamentRegistration(identity=identity, registered_by=caller))

            self.logger.info(f"{identity} registered for the tournament (by {caller})")

        except IntegrityError as e:
            self.logger.warning(f"Concurrent registration of {identity}: {e}")
            raise AlreadyRegisteredError(identity)
        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to register {identity}: {e}")
            raise DatabaseError("register_for_tournament", str(e))

    async def _unregister(self, caller: str, identity: str) -> None:
        try:
            async with self.db.transaction() as session:
                state = await self._get_state(session)
                if state.status not in REGISTRATION_OPEN:
                    raise InvalidStateTransitionError("accept unregistrations", state.status.value)

                result = await session.execute(
                    select(TournamentRegistration).where(TournamentRegistration.identity == identity)
                )
                registration = result.scalar_one_or_none()
                if registration is None:
                    raise NotRegisteredError(identity)

                await session.delete(registration)

            self.logger.info(f"{identity} unregistered from the tournament (by {caller})")

        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to unregister {identity}: {e}")
            raise DatabaseError("unregister_from_tournament", str(e))

    async def _is_registered(self, session: AsyncSession, identity: str) -> bool:
        result = await session.execute(
            select(TournamentRegistration.id).where(TournamentRegistration.identity == identity)
        )
        return result.scalar_one_or_none() is not None

    # ============================================================================
    # Match submission
    # ============================================================================

    async def submit_tournament_match(
        self,
        caller: str,
        player_a: str,
        player_b: str,
        score_a: int,
        score_b: int,
        round_number: int,
        table_number: int
    ) -> TournamentMatchView:
        """
        Submit a best-of-three tournament match for approval.

        Rounds are created on demand. Submitting into a round that was
        already complete re-opens it.

        Raises:
            InvalidScoreError: Score is not a valid best-of-three result
            InvalidInputError: Same player twice, round or table out of range
            InvalidStateTransitionError: Tournament is not active
            ForbiddenError: Proxy submission without score authority
            NotRegisteredError: Either player is not registered
        """
        validate_best_of_three(score_a, score_b)

        if player_a == player_b:
            raise InvalidInputError(
                f"Player {player_a} cannot play against themselves",
                "❌ Player 1 and Player 2 must be different."
            )
        if not 1 <= round_number <= Config.TOURNAMENT_MAX_ROUNDS:
            raise InvalidInputError(
                f"Round {round_number} out of range",
                f"❌ Round must be between 1 and {Config.TOURNAMENT_MAX_ROUNDS}."
            )
        if not 1 <= table_number <= Config.TOURNAMENT_MAX_TABLES:
            raise InvalidInputError(
                f"Table {table_number} out of range",
                f"❌ Table must be between 1 and {Config.TOURNAMENT_MAX_TABLES}."
            )

        try:
            async with self.db.transaction() as session:
                state = await self._get_state(session)
                if state.status != TournamentStatus.ACTIVE:
                    raise InvalidStateTransitionError("accept match scores", state.status.value)

                if caller != player_a and not await self.access.has_score_authority(caller, session):
                    self.logger.warning(f"{caller} tried to submit a tournament match on behalf of {player_a}")
                    raise ForbiddenError(
                        f"{caller} cannot submit matches on behalf of {player_a}",
                        "❌ You can only submit matches you played in."
                    )

                for identity in (player_a, player_b):
                    if not await self._is_registered(session, identity):
                        raise NotRegisteredError(identity)

                tournament_round = await self._get_or_create_round(session, round_number)

                result = await session.execute(
                    select(func.count(TournamentMatch.id)).where(TournamentMatch.round_id == tournament_round.id)
                )
                position = result.scalar() or 0

                match = TournamentMatch(
                    round_id=tournament_round.id,
                    round_number=round_number,
                    position=position,
                    player_a=player_a,
                    player_b=player_b,
                    score_a=score_a,
                    score_b=score_b,
                    table_number=table_number,
                    status=MatchStatus.PENDING,
                    submitted_by=caller,
                    submitted_at=datetime.now(timezone.utc)
                )
                session.add(match)
                tournament_round.is_complete = False
                state.current_round = max(state.current_round or 0, round_number)
                await session.flush()

            self.logger.info(
                f"Tournament match R{round_number}#{position} submitted by {caller}: "
                f"{player_a} {score_a}-{score_b} {player_b} (table {table_number})"
            )
            return self._match_view(match)

        except IntegrityError as e:
            self.logger.warning(f"Concurrent tournament submission in round {round_number}: {e}")
            raise ConflictError(
                f"Another match was submitted to round {round_number} at the same time",
                "❌ Another match was just submitted to this round. Please try again."
            )
        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to submit tournament match {player_a} vs {player_b}: {e}")
            raise DatabaseError("submit_tournament_match", str(e))

    async def submit_tournament_match_score(
        self,
        caller: str,
        opponent: str,
        score_a: int,
        score_b: int,
        round_number: int,
        table_number: int
    ) -> TournamentMatchView:
        """Submit a tournament match where the caller is player A"""
        return await self.submit_tournament_match(
            caller, caller, opponent, score_a, score_b, round_number, table_number
        )

    async def _get_or_create_round(self, session: AsyncSession, round_number: int) -> TournamentRound:
        result = await session.execute(
            select(TournamentRound).where(TournamentRound.round_number == round_number).with_for_update()
        )
        tournament_round = result.scalar_one_or_none()
        if tournament_round is None:
            tournament_round = TournamentRound(round_number=round_number, is_complete=False)
            session.add(tournament_round)
            await session.flush()
        return tournament_round

    # ============================================================================
    # Approval / rejection
    # ============================================================================

    async def approve_tournament_match(self, caller: str, round_number: int, index: int) -> TournamentMatchView:
        """
        Approve a pending tournament match.

        Applies Elo to both members, updates standings and closes the round
        when nothing in it is pending any more.

        Raises:
            MatchNotFoundError: No pending match at (round_number, index)
            ForbiddenError: Caller is neither player B nor a score authority
        """
        try:
            async with self.db.rating_lock:
                async with self.db.transaction() as session:
                    match = await self._load_pending_match(session, round_number, index)
                    await authorize_match_resolution(self.access, session, caller, match.player_a, match.player_b)

                    outcome = await self.db.record_rated_match(
                        session,
                        match.player_a,
                        match.player_b,
                        match.score_a,
                        match.score_b,
                        MatchKind.TOURNAMENT,
                        tournament_match_id=match.id
                    )

                    result = await session.execute(
                        update(TournamentMatch)
                        .where(TournamentMatch.id == match.id, TournamentMatch.status == MatchStatus.PENDING)
                        .values(
                            status=MatchStatus.APPROVED,
                            k_factor_a=outcome.k_factor_a,
                            k_factor_b=outcome.k_factor_b,
                            rating_change_a=outcome.rating_change_a,
                            rating_change_b=outcome.rating_change_b,
                            resolved_by=caller,
                            resolved_at=datetime.now(timezone.utc)
                        )
                    )
                    if result.rowcount == 0:
                        raise MatchNotFoundError(f"round {round_number}, match {index}")

                    await self._record_standings(session, match)
                    await self._update_round_completion(session, match.round_id)
                    await session.refresh(match)

            self.logger.info(f"Tournament match R{round_number}#{index} approved by {caller}, winner {match.winner}")
            return self._match_view(match)

        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to approve tournament match R{round_number}#{index}: {e}")
            raise DatabaseError("approve_tournament_match", str(e))

    async def reject_tournament_match(
        self,
        caller: str,
        round_number: int,
        index: int,
        reason: Optional[str] = None
    ) -> TournamentMatchView:
        """
        Reject a pending tournament match. Unlike regular matches the reason
        is optional. Ratings and standings are not touched.
        """
        cleaned_reason = validate_rejection_reason(reason, required=False)

        try:
            async with self.db.transaction() as session:
                match = await self._load_pending_match(session, round_number, index)
                await authorize_match_resolution(self.access, session, caller, match.player_a, match.player_b)

                result = await session.execute(
                    update(TournamentMatch)
                    .where(TournamentMatch.id == match.id, TournamentMatch.status == MatchStatus.PENDING)
                    .values(
                        status=MatchStatus.REJECTED,
                        rejection_reason=cleaned_reason,
                        resolved_by=caller,
                        resolved_at=datetime.now(timezone.utc)
                    )
                )
                if result.rowcount == 0:
                    raise MatchNotFoundError(f"round {round_number}, match {index}")

                await self._update_round_completion(session, match.round_id)
                await session.refresh(match)

            self.logger.info(f"Tournament match R{round_number}#{index} rejected by {caller}: {cleaned_reason}")
            return self._match_view(match)

        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to reject tournament match R{round_number}#{index}: {e}")
            raise DatabaseError("reject_tournament_match", str(e))

    async def _load_pending_match(self, session: AsyncSession, round_number: int, index: int) -> TournamentMatch:
        result = await session.execute(
            select(TournamentMatch)
            .where(
                TournamentMatch.round_number == round_number,
                TournamentMatch.position == index,
                TournamentMatch.status == MatchStatus.PENDING
            )
            .with_for_update()
        )
        match = result.scalar_one_or_none()
        if match is None:
            raise MatchNotFoundError(f"round {round_number}, match {index}")
        return match

    async def _get_or_create_stats(self, session: AsyncSession, identity: str) -> TournamentPlayerStats:
        result = await session.execute(
            select(TournamentPlayerStats).where(TournamentPlayerStats.identity == identity).with_for_update()
        )
        stats = result.scalar_one_or_none()
        if stats is None:
            stats = TournamentPlayerStats(
                identity=identity, wins=0, losses=0, games_won=0, games_lost=0, points=0
            )
            session.add(stats)
            await session.flush()
        return stats

    async def _record_standings(self, session: AsyncSession, match: TournamentMatch) -> None:
        sides = (
            (match.player_a, match.score_a, match.score_b),
            (match.player_b, match.score_b, match.score_a),
        )
        for identity, games_for, games_against in sides:
            stats = await self._get_or_create_stats(session, identity)
            stats.games_won += games_for
            stats.games_lost += games_against
            if identity == match.winner:
                stats.wins += 1
                stats.points += Config.POINTS_PER_WIN
            else:
                stats.losses += 1
                stats.points += Config.POINTS_PER_LOSS

    async def _update_round_completion(self, session: AsyncSession, round_id: int) -> None:
        """A round is complete once none of its matches is pending"""
        await session.flush()
        result = await session.execute(
            select(TournamentRound)
            .where(TournamentRound.id == round_id)
            .options(selectinload(TournamentRound.matches))
            .execution_options(populate_existing=True)
        )
        tournament_round = result.scalar_one()
        tournament_round.is_complete = not tournament_round.has_pending_matches
        if tournament_round.is_complete:
            self.logger.info(f"Tournament round {tournament_round.round_number} complete")

    # ============================================================================
    # Queries
    # ============================================================================

    async def get_status(self) -> TournamentStatus:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(TournamentState.status).order_by(TournamentState.id).limit(1)
            )
            return result.scalar_one_or_none() or TournamentStatus.NOT_STARTED

    async def is_tournament_active(self) -> bool:
        return await self.get_status() == TournamentStatus.ACTIVE

    async def get_registered_players(self) -> List[RegisteredPlayer]:
        """Registered players in registration order"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Member)
                .join(TournamentRegistration, TournamentRegistration.identity == Member.identity)
                .order_by(TournamentRegistration.registered_at, TournamentRegistration.id)
            )
            return [
                RegisteredPlayer(identity=m.identity, name=m.name, rating=m.elo_rating, photo=m.photo)
                for m in result.scalars().all()
            ]

    async def get_pending_tournament_matches(self) -> List[TournamentMatchView]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(TournamentMatch)
                .where(TournamentMatch.status == MatchStatus.PENDING)
                .order_by(TournamentMatch.round_number, TournamentMatch.position)
            )
            return [self._match_view(m) for m in result.scalars().all()]

    async def get_tournament_state(self) -> TournamentSnapshot:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(TournamentState).order_by(TournamentState.id).limit(1)
            )
            state = result.scalar_one_or_none()

            result = await session.execute(
                select(TournamentRound)
                .options(selectinload(TournamentRound.matches))
                .order_by(TournamentRound.round_number)
            )
            rounds = [
                TournamentRoundView(
                    round_number=r.round_number,
                    is_complete=bool(r.is_complete),
                    matches=[self._match_view(m) for m in r.matches]
                )
                for r in result.scalars().all()
            ]

            result = await session.execute(select(TournamentPlayerStats).order_by(TournamentPlayerStats.id))
            stats = [
                PlayerStatsView(
                    identity=s.identity, wins=s.wins, losses=s.losses,
                    games_won=s.games_won, games_lost=s.games_lost, points=s.points
                )
                for s in result.scalars().all()
            ]

        registered = await self.get_registered_players()

        return TournamentSnapshot(
            status=(state.status if state else TournamentStatus.NOT_STARTED).value,
            current_round=state.current_round if state else 0,
            registered_players=registered,
            rounds=rounds,
            player_stats=stats,
            started_at=state.started_at if state else None,
            ended_at=state.ended_at if state else None
        )

    @staticmethod
    def _match_view(match: TournamentMatch) -> TournamentMatchView:
        return TournamentMatchView(
            round_number=match.round_number,
            index=match.position,
            player_a=match.player_a,
            player_b=match.player_b,
            score_a=match.score_a,
            score_b=match.score_b,
            table_number=match.table_number,
            status=match.status.value,
            rejection_reason=match.rejection_reason,
            submitted_at=match.submitted_at,
            rating_change_a=match.rating_change_a or 0,
            rating_change_b=match.rating_change_b or 0
        )
