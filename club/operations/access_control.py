"""
Access Control Operations Module

Role bookkeeping for the club backend. The identity provider authenticates
callers; this module decides what an authenticated identity may do.

Roles:
- admin: full control (tournament lifecycle, member deletion, role changes)
- score_auth_admin: may approve/reject any match, submit on behalf of two
  players, create claim codes and manage the schedule
- user: a linked member
- guest: an authenticated identity with no member record

Every mutating operation elsewhere in the package gates on the helpers
require_admin() and require_score_authority().
"""

from typing import Optional, List
from contextlib import asynccontextmanager
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from club.database.models import RoleAssignment, UserRole, Member
from club.utils.exceptions import ForbiddenError, NotFoundError, ConflictError, InvalidInputError
from club.utils.logger import setup_logger

logger = setup_logger(__name__)


class AccessControl:
    """Role lookups and role administration"""

    def __init__(self, database):
        """Initialize with database instance"""
        self.db = database
        self.logger = logger

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new session.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.db.get_session() as new_session:
                yield new_session

    # ============================================================================
    # Role lookups
    # ============================================================================

    async def get_role(self, identity: str, session: Optional[AsyncSession] = None) -> UserRole:
        """Resolve the effective role of an identity"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(RoleAssignment).where(RoleAssignment.identity == identity)
            )
            assignment = result.scalar_one_or_none()
            if assignment and assignment.role in (UserRole.ADMIN, UserRole.SCORE_AUTH_ADMIN):
                return assignment.role

            result = await s.execute(select(Member.id).where(Member.identity == identity))
            if result.scalar_one_or_none() is not None:
                return UserRole.USER
            return UserRole.GUEST

    async def is_admin(self, identity: str, session: Optional[AsyncSession] = None) -> bool:
        return await self.get_role(identity, session) == UserRole.ADMIN

    async def is_score_auth_admin(self, identity: str, session: Optional[AsyncSession] = None) -> bool:
        return await self.get_role(identity, session) == UserRole.SCORE_AUTH_ADMIN

    async def has_score_authority(self, identity: str, session: Optional[AsyncSession] = None) -> bool:
        """Admins and score-authentication admins may act on any match"""
        return await self.get_role(identity, session) in (UserRole.ADMIN, UserRole.SCORE_AUTH_ADMIN)

    async def require_admin(self, identity: str, action: str, session: Optional[AsyncSession] = None):
        if not await self.is_admin(identity, session):
            self.logger.warning(f"Denied '{action}' for non-admin {identity}")
            raise ForbiddenError(
                f"{identity} is not allowed to {action}",
                "❌ Only admins can do that."
            )

    async def require_score_authority(self, identity: str, action: str, session: Optional[AsyncSession] = None):
        if not await self.has_score_authority(identity, session):
            self.logger.warning(f"Denied '{action}' for {identity} without score authority")
            raise ForbiddenError(
                f"{identity} is not allowed to {action}",
                "❌ Only admins and score authentication admins can do that."
            )

    async def get_score_auth_admins(self) -> List[str]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(RoleAssignment.identity)
                .where(RoleAssignment.role == UserRole.SCORE_AUTH_ADMIN)
                .order_by(RoleAssignment.assigned_at, RoleAssignment.id)
            )
            return list(result.scalars().all())

    # ============================================================================
    # Role administration
    # ============================================================================

    async def initialize_access_control(self, caller: str) -> bool:
        """
        Make the caller the first admin if the club has none yet.

        Returns:
            True if the caller was made admin, False if an admin already exists
        """
        async with self.db.transaction() as session:
            result = await session.execute(
                select(func.count(RoleAssignment.id)).where(RoleAssignment.role == UserRole.ADMIN)
            )
            if result.scalar() > 0:
                return False

            await self._set_role(session, caller, UserRole.ADMIN, assigned_by=caller)
            await self.db.add_audit_log(session, caller, 'initialize_access_control')
            self.logger.info(f"Access control initialized, first admin: {caller}")
            return True

    async def assign_role(self, caller: str, identity: str, role: UserRole) -> None:
        """Set an identity's role (admin only)"""
        if role == UserRole.GUEST:
            raise InvalidInputError("Cannot assign the guest role", "❌ Guest is not an assignable role.")

        async with self.db.transaction() as session:
            await self.require_admin(caller, "assign roles", session)

            if role != UserRole.ADMIN and await self.is_admin(identity, session):
                await self._ensure_not_last_admin(session)

            await self._set_role(session, identity, role, assigned_by=caller)
            await self.db.add_audit_log(session, caller, 'assign_role', {
                'identity': identity,
                'role': role.value
            })

        self.logger.info(f"{caller} assigned role {role.value} to {identity}")

    async def appoint_score_auth_admin(self, caller: str, identity: str) -> None:
        async with self.db.transaction() as session:
            await self.require_admin(caller, "appoint score authentication admins", session)
            if await self.is_admin(identity, session):
                raise ConflictError(
                    f"{identity} is already an admin",
                    "❌ That user is already a full admin."
                )

            await self._set_role(session, identity, UserRole.SCORE_AUTH_ADMIN, assigned_by=caller)
            await self.db.add_audit_log(session, caller, 'appoint_score_auth_admin', {'identity': identity})

        self.logger.info(f"{caller} appointed score auth admin {identity}")

    async def remove_score_auth_admin(self, caller: str, identity: str) -> None:
        async with self.db.transaction() as session:
            await self.require_admin(caller, "remove score authentication admins", session)

            result = await session.execute(
                select(RoleAssignment).where(
                    RoleAssignment.identity == identity,
                    RoleAssignment.role == UserRole.SCORE_AUTH_ADMIN
                )
            )
            assignment = result.scalar_one_or_none()
            if assignment is None:
                raise NotFoundError(
                    f"{identity} is not a score auth admin",
                    "❌ That user is not a score authentication admin."
                )

            assignment.role = UserRole.USER
            assignment.assigned_by = caller
            await self.db.add_audit_log(session, caller, 'remove_score_auth_admin', {'identity': identity})

        self.logger.info(f"{caller} removed score auth admin {identity}")

    async def revoke_roles(self, session: AsyncSession, identity: str) -> Optional[UserRole]:
        """
        Drop any role assignment held by an identity, inside the caller's transaction.

        Returns:
            The role that was revoked, or None if the identity held none

        Raises:
            ConflictError: The identity is the last admin
        """
        result = await session.execute(
            select(RoleAssignment).where(RoleAssignment.identity == identity)
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            return None

        revoked = assignment.role
        if revoked == UserRole.ADMIN:
            await self._ensure_not_last_admin(session)
        await session.delete(assignment)
        await session.flush()
        return revoked

    async def _set_role(self, session: AsyncSession, identity: str, role: UserRole, assigned_by: str):
        result = await session.execute(
            select(RoleAssignment).where(RoleAssignment.identity == identity)
        )
        assignment = result.scalar_one_or_none()
        if assignment is None:
            session.add(RoleAssignment(identity=identity, role=role, assigned_by=assigned_by))
        else:
            assignment.role = role
            assignment.assigned_by = assigned_by
        await session.flush()

    async def _ensure_not_last_admin(self, session: AsyncSession):
        result = await session.execute(
            select(func.count(RoleAssignment.id)).where(RoleAssignment.role == UserRole.ADMIN)
        )
        if result.scalar() <= 1:
            raise ConflictError(
                "Cannot demote the last admin",
                "❌ The club must keep at least one admin."
            )
