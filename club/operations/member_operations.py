"""
Member Operations Module

Business logic for member lifecycle:

- self-registration and profile edits (save_profile, update_member_photo)
- claim codes: admins pre-create a member record and hand out a one-time
  code; the identity that redeems it becomes that member
- admin deletion and bulk import

Deleting a member removes them from the directory, leaderboard and tournament
registration. Their matches and rating history stay as the audit trail.
"""

import secrets
from typing import Optional, List, Iterable, Mapping
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from club.config import Config
from club.database.models import Member, ClaimRecord, TournamentRegistration
from club.utils.exceptions import (
    ClubError, DatabaseError, InvalidInputError, MemberNotFoundError,
    ClaimCodeNotFoundError, AlreadyMemberError
)
from club.utils.logger import setup_logger

logger = setup_logger(__name__)

# Attempts at drawing a fresh claim code before giving up
CLAIM_CODE_ATTEMPTS = 5


def validate_member_name(name: Optional[str]) -> str:
    """
    Strip and validate a display name.

    Raises:
        InvalidInputError: If the name is missing, not text, empty or too long
    """
    if name is not None and not isinstance(name, str):
        raise InvalidInputError(f"Member name must be text, got {type(name).__name__}", "❌ Please enter a name.")
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInputError("Member name is required", "❌ Please enter a name.")
    if len(cleaned) > Config.MAX_NAME_LENGTH:
        raise InvalidInputError(
            f"Member name exceeds {Config.MAX_NAME_LENGTH} characters",
            f"❌ Name must be at most {Config.MAX_NAME_LENGTH} characters."
        )
    return cleaned


def generate_claim_code() -> str:
    """128 bits of randomness, URL-safe"""
    return secrets.token_urlsafe(16)


class MemberOperations:
    """
    Business logic operations for Member management and account linking.
    """

    def __init__(self, database, access_control):
        """Initialize with database instance and access control"""
        self.db = database
        self.access = access_control
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
    # Profiles
    # ============================================================================

    async def save_profile(self, caller: str, name: str, photo: Optional[bytes] = None) -> Member:
        """
        Create the caller's member record on first save, or update it.

        A photo of None leaves an existing photo unchanged.
        """
        cleaned_name = validate_member_name(name)

        try:
            async with self.db.transaction() as session:
                member = await self.db.get_member_by_identity(caller, session)
                if member is None:
                    member = Member(
                        identity=caller,
                        name=cleaned_name,
                        photo=photo,
                        elo_rating=Config.STARTING_ELO,
                        matches_played=0,
                        wins=0,
                        losses=0
                    )
                    session.add(member)
                    self.logger.info(f"Created member {caller} ({cleaned_name})")
                else:
                    member.name = cleaned_name
                    if photo is not None:
                        member.photo = photo
                    member.last_active = datetime.now(timezone.utc)
                    self.logger.info(f"Updated profile of {caller}")
                await session.flush()
                await session.refresh(member)
            return member

        except IntegrityError as e:
            self.logger.warning(f"Concurrent profile creation for {caller}: {e}")
            raise AlreadyMemberError(caller)
        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to save profile for {caller}: {e}")
            raise DatabaseError("save_profile", str(e))

    async def get_profile(self, identity: str, session: Optional[AsyncSession] = None) -> Optional[Member]:
        async with self._get_session_context(session) as s:
            return await self.db.get_member_by_identity(identity, s)

    async def update_member_photo(self, caller: str, photo: Optional[bytes]) -> Member:
        """Replace (or with None, clear) the caller's profile photo"""
        async with self.db.transaction() as session:
            member = await self.db.get_member_by_identity(caller, session)
            if member is None:
                raise MemberNotFoundError(caller)
            member.photo = photo
            await session.flush()

        self.logger.info(f"Updated photo of {caller}")
        return member

    # ============================================================================
    # Claim codes
    # ============================================================================

    async def create_member_with_claim_code(
        self,
        caller: str,
        name: str,
        photo: Optional[bytes] = None,
        elo_rating: Optional[int] = None
    ) -> str:
        """
        Pre-create a member and return the one-time code that claims it.

        Delivering the code to the person is up to the caller.

        Raises:
            ForbiddenError: Caller is neither admin nor score authentication admin
            InvalidInputError: Bad name or negative rating
        """
        cleaned_name = validate_member_name(name)
        rating = Config.STARTING_ELO if elo_rating is None else elo_rating
        if rating < 0:
            raise InvalidInputError("Rating cannot be negative", "❌ Rating cannot be negative.")

        await self.access.require_score_authority(caller, "create claim codes")

        for attempt in range(CLAIM_CODE_ATTEMPTS):
            code = generate_claim_code()
            try:
                async with self.db.transaction() as session:
                    session.add(ClaimRecord(
                        code=code,
                        name=cleaned_name,
                        elo_rating=rating,
                        photo=photo,
                        created_by=caller
                    ))
                self.logger.info(f"{caller} created claim record for {cleaned_name}")
                return code
            except IntegrityError:
                self.logger.warning(f"Claim code collision on attempt {attempt + 1}, drawing a new one")
            except SQLAlchemyError as e:
                self.logger.error(f"Failed to create claim record for {cleaned_name}: {e}")
                raise DatabaseError("create_member_with_claim_code", str(e))

        raise DatabaseError("create_member_with_claim_code", "could not generate a unique claim code")

    async def claim_member_account(self, caller: str, code: str) -> Member:
        """
        Redeem a claim code: create a member for the caller from the stored
        record and delete the record.

        Raises:
            AlreadyMemberError: Caller is already linked to a member
            ClaimCodeNotFoundError: Unknown or already used code
        """
        try:
            async with self.db.transaction() as session:
                if await self.db.get_member_by_identity(caller, session) is not None:
                    raise AlreadyMemberError(caller)

                result = await session.execute(
                    select(ClaimRecord).where(ClaimRecord.code == (code or "").strip()).with_for_update()
                )
                record = result.scalar_one_or_none()
                if record is None:
                    self.logger.warning(f"{caller} tried an unknown or used claim code")
                    raise ClaimCodeNotFoundError()

                name, photo, rating = record.name, record.photo, record.elo_rating
                result = await session.execute(delete(ClaimRecord).where(ClaimRecord.id == record.id))
                if result.rowcount == 0:
                    # Redeemed by someone else in the meantime
                    raise ClaimCodeNotFoundError()

                member = Member(
                    identity=caller,
                    name=name,
                    photo=photo,
                    elo_rating=rating,
                    matches_played=0,
                    wins=0,
                    losses=0
                )
                session.add(member)
                await session.flush()
                await session.refresh(member)

            self.logger.info(f"{caller} claimed member account {member.name}")
            return member

        except IntegrityError as e:
            self.logger.warning(f"Concurrent claim by {caller}: {e}")
            raise AlreadyMemberError(caller)
        except ClubError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to claim member account for {caller}: {e}")
            raise DatabaseError("claim_member_account", str(e))

    async def get_unclaimed_members(self, caller: str) -> List[ClaimRecord]:
        """Claim records not yet redeemed, oldest first (codes included)"""
        await self.access.require_score_authority(caller, "view unclaimed members")
        async with self.db.get_session() as session:
            result = await session.execute(select(ClaimRecord).order_by(ClaimRecord.created_at, ClaimRecord.id))
            return list(result.scalars().all())

    # ============================================================================
    # Administration
    # ============================================================================

    async def delete_member(self, caller: str, identity: str) -> None:
        """
        Remove a member from the club (admin only).

        Any admin or score authentication role the member held is revoked
        with the record.

        Raises:
            ForbiddenError: Caller is not an admin
            MemberNotFoundError: No member with that identity
            ConflictError: The member is the last admin
        """
        async with self.db.transaction() as session:
            await self.access.require_admin(caller, "delete members", session)

            member = await self.db.get_member_by_identity(identity, session)
            if member is None:
                raise MemberNotFoundError(identity)

            name = member.name
            rating = member.elo_rating
            revoked = await self.access.revoke_roles(session, identity)
            await session.delete(member)
            await session.execute(
                delete(TournamentRegistration).where(TournamentRegistration.identity == identity)
            )
            await self.db.add_audit_log(session, caller, 'delete_member', {
                'identity': identity,
                'name': name,
                'elo_rating': rating,
                'revoked_role': revoked.value if revoked else None
            })

        self.logger.info(f"{caller} deleted member {identity} ({name})")

    async def import_members(self, caller: str, records: Iterable[Mapping]) -> int:
        """
        Bulk-create members from records with 'identity', 'name' and optional
        'elo_rating' / 'photo' keys (admin only).

        Identities that already have a member are skipped.

        Returns:
            Number of members created
        """
        prepared = []
        for record in records:
            identity = record.get('identity')
            if not isinstance(identity, str) or not identity.strip():
                raise InvalidInputError("Import record without identity", "❌ Every member needs an identity.")
            identity = identity.strip()
            rating = record.get('elo_rating', Config.STARTING_ELO)
            try:
                rating = int(rating)
            except (TypeError, ValueError):
                raise InvalidInputError(
                    f"Invalid rating {rating!r} for {identity}",
                    "❌ Rating must be a whole number."
                )
            if rating < 0:
                raise InvalidInputError(f"Negative rating for {identity}", "❌ Rating cannot be negative.")
            prepared.append((identity, validate_member_name(record.get('name')), rating, record.get('photo')))

        created = 0
        async with self.db.transaction() as session:
            await self.access.require_admin(caller, "import members", session)

            seen = set()
            for identity, name, rating, photo in prepared:
                if identity in seen or await self.db.get_member_by_identity(identity, session) is not None:
                    self.logger.debug(f"Skipping existing member {identity}")
                    continue
                seen.add(identity)
                session.add(Member(
                    identity=identity,
                    name=name,
                    photo=photo,
                    elo_rating=rating,
                    matches_played=0,
                    wins=0,
                    losses=0
                ))
                created += 1

            await self.db.add_audit_log(session, caller, 'import_members', {'created': created})

        self.logger.info(f"{caller} imported {created} members")
        return created
