import asyncio
import json
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select, func
from contextlib import asynccontextmanager

from club.config import Config
from club.data_models.match import RatingOutcome
from club.database.models import (
    Base, Member, RatingHistory, TournamentState, TournamentStatus,
    RoleAssignment, UserRole, AuditLog, MatchKind, MatchResult
)
from club.utils.elo import EloCalculator
from club.utils.exceptions import MemberNotFoundError
from club.utils.logger import setup_logger

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None
        # Serializes every read-modify-write of member ratings
        self.rating_lock = asyncio.Lock()

    @property
    def session_factory(self):
        return self.async_session

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = self.database_url or Config.get_async_database_url()
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

        await self.initialize_default_data()

    async def initialize_default_data(self):
        """Create the tournament state row and seed the bootstrap admin"""
        async with self.transaction() as session:
            result = await session.execute(select(func.count(TournamentState.id)))
            if result.scalar() == 0:
                session.add(TournamentState(status=TournamentStatus.NOT_STARTED, current_round=0))
                self.logger.info("Created initial tournament state")

            if Config.BOOTSTRAP_ADMIN_IDENTITY:
                result = await session.execute(
                    select(RoleAssignment).where(RoleAssignment.identity == Config.BOOTSTRAP_ADMIN_IDENTITY)
                )
                assignment = result.scalar_one_or_none()
                if assignment is None:
                    session.add(RoleAssignment(
                        identity=Config.BOOTSTRAP_ADMIN_IDENTITY,
                        role=UserRole.ADMIN,
                        assigned_by='bootstrap'
                    ))
                    self.logger.info("Seeded bootstrap admin")
                elif assignment.role != UserRole.ADMIN:
                    assignment.role = UserRole.ADMIN

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure.

        Usage:
            async with db.transaction() as session:
                await db.record_rated_match(session, ...)
                match.status = MatchStatus.APPROVED
                # Both commit together here

        Exceptions must be allowed to propagate out of the context for
        rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # ============================================================================
    # Member operations
    # ============================================================================

    async def get_member_by_identity(self, identity: str, session: Optional[AsyncSession] = None) -> Optional[Member]:
        """Get a member by their external identity"""
        if session is not None:
            result = await session.execute(select(Member).where(Member.identity == identity))
            return result.scalar_one_or_none()
        async with self.get_session() as new_session:
            result = await new_session.execute(select(Member).where(Member.identity == identity))
            return result.scalar_one_or_none()

    async def count_approved_matches(self, identity: str, session: AsyncSession) -> int:
        """Number of approved matches (regular and tournament) in a member's history"""
        result = await session.execute(
            select(func.count(RatingHistory.id)).where(RatingHistory.identity == identity)
        )
        return result.scalar() or 0

    async def get_rating_history(self, identity: str) -> List[RatingHistory]:
        """A member's match history from their own side, oldest first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(RatingHistory)
                .where(RatingHistory.identity == identity)
                .order_by(RatingHistory.recorded_at, RatingHistory.id)
            )
            return list(result.scalars().all())

    async def record_rated_match(
        self,
        session: AsyncSession,
        player_a: str,
        player_b: str,
        score_a: int,
        score_b: int,
        match_kind: MatchKind,
        match_id: Optional[int] = None,
        tournament_match_id: Optional[int] = None
    ) -> RatingOutcome:
        """
        Apply one approved match to both members' ratings and histories.

        This is the single mutation point for ratings shared by the regular
        and tournament workflows. Callers must hold rating_lock and run inside
        transaction() so the rating update commits with the status change.

        Raises:
            MemberNotFoundError: If either player no longer has a member record
        """
        members = {}
        for identity in (player_a, player_b):
            result = await session.execute(
                select(Member).where(Member.identity == identity).with_for_update()
            )
            member = result.scalar_one_or_none()
            if member is None:
                raise MemberNotFoundError(identity)
            members[identity] = member

        member_a = members[player_a]
        member_b = members[player_b]

        # K-factor uses the count before this approval
        k_factor_a = EloCalculator.get_k_factor(await self.count_approved_matches(player_a, session))
        k_factor_b = EloCalculator.get_k_factor(await self.count_approved_matches(player_b, session))

        old_rating_a = member_a.elo_rating
        old_rating_b = member_b.elo_rating
        delta_a, delta_b = EloCalculator.compute_match_deltas(
            old_rating_a, old_rating_b, score_a, score_b, k_factor_a, k_factor_b
        )
        new_rating_a = EloCalculator.apply_delta(old_rating_a, delta_a)
        new_rating_b = EloCalculator.apply_delta(old_rating_b, delta_b)

        a_won = score_a > score_b
        now = datetime.now(timezone.utc)

        for member, new_rating, won in ((member_a, new_rating_a, a_won), (member_b, new_rating_b, not a_won)):
            member.elo_rating = new_rating
            member.matches_played = (member.matches_played or 0) + 1
            if won:
                member.wins = (member.wins or 0) + 1
            else:
                member.losses = (member.losses or 0) + 1
            member.last_active = now

        session.add(RatingHistory(
            identity=player_a,
            opponent=player_b,
            own_score=score_a,
            opponent_score=score_b,
            result=MatchResult.WIN if a_won else MatchResult.LOSS,
            old_rating=old_rating_a,
            new_rating=new_rating_a,
            rating_change=new_rating_a - old_rating_a,
            k_factor=k_factor_a,
            match_kind=match_kind,
            match_id=match_id,
            tournament_match_id=tournament_match_id,
            recorded_at=now
        ))
        session.add(RatingHistory(
            identity=player_b,
            opponent=player_a,
            own_score=score_b,
            opponent_score=score_a,
            result=MatchResult.LOSS if a_won else MatchResult.WIN,
            old_rating=old_rating_b,
            new_rating=new_rating_b,
            rating_change=new_rating_b - old_rating_b,
            k_factor=k_factor_b,
            match_kind=match_kind,
            match_id=match_id,
            tournament_match_id=tournament_match_id,
            recorded_at=now
        ))
        await session.flush()

        self.logger.info(
            f"Rated {match_kind.value} match {player_a} {score_a}-{score_b} {player_b}: "
            f"{old_rating_a}->{new_rating_a} (K={k_factor_a}), {old_rating_b}->{new_rating_b} (K={k_factor_b})"
        )

        return RatingOutcome(
            player_a=player_a,
            player_b=player_b,
            k_factor_a=k_factor_a,
            k_factor_b=k_factor_b,
            rating_change_a=new_rating_a - old_rating_a,
            rating_change_b=new_rating_b - old_rating_b,
            old_rating_a=old_rating_a,
            old_rating_b=old_rating_b,
            new_rating_a=new_rating_a,
            new_rating_b=new_rating_b
        )

    # ============================================================================
    # Audit trail
    # ============================================================================

    async def add_audit_log(self, session: AsyncSession, actor: str, action: str, details: Optional[dict] = None):
        """Record an administrative action inside the caller's transaction"""
        session.add(AuditLog(
            actor=actor,
            action=action,
            details=json.dumps(details or {}, default=str)
        ))

    async def get_audit_log(self, action: Optional[str] = None, limit: int = 100) -> List[AuditLog]:
        async with self.get_session() as session:
            query = select(AuditLog)
            if action:
                query = query.where(AuditLog.action == action)
            query = query.order_by(AuditLog.id.desc()).limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())
