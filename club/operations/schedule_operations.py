"""
Schedule Operations Module

Weekly schedule of club sessions, keyed by their date and time. Admins and
score authentication admins manage it; anyone can read it.
"""

from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from club.constants import ScheduleConstants
from club.database.models import WeeklySession
from club.utils.exceptions import ConflictError, InvalidInputError, NotFoundError
from club.utils.logger import setup_logger

logger = setup_logger(__name__)


def normalize_session_date(date: datetime) -> datetime:
    """Store session dates as naive UTC so they compare equal on lookup"""
    if not isinstance(date, datetime):
        raise InvalidInputError(f"Invalid session date {date!r}", "❌ Please pick a valid date.")
    if date.tzinfo is not None:
        date = date.astimezone(timezone.utc).replace(tzinfo=None)
    return date


def validate_session_input(session_type: str, notes: Optional[str]) -> tuple:
    if session_type not in ScheduleConstants.SESSION_TYPES:
        raise InvalidInputError(
            f"Unknown session type {session_type!r}",
            f"❌ Session type must be one of: {', '.join(ScheduleConstants.SESSION_TYPES)}."
        )
    cleaned_notes = (notes or "").strip()
    if len(cleaned_notes) > ScheduleConstants.MAX_NOTES_LENGTH:
        raise InvalidInputError(
            "Session notes too long",
            f"❌ Notes must be at most {ScheduleConstants.MAX_NOTES_LENGTH} characters."
        )
    return session_type, cleaned_notes


class ScheduleOperations:
    """CRUD for weekly sessions"""

    def __init__(self, database, access_control):
        self.db = database
        self.access = access_control
        self.logger = logger

    async def get_schedule(self) -> List[WeeklySession]:
        async with self.db.get_session() as session:
            result = await session.execute(select(WeeklySession).order_by(WeeklySession.date))
            return list(result.scalars().all())

    async def create_session(
        self,
        caller: str,
        date: datetime,
        session_type: str = ScheduleConstants.DEFAULT_SESSION_TYPE,
        notes: Optional[str] = None
    ) -> WeeklySession:
        """
        Raises:
            ForbiddenError: Caller lacks score authority
            InvalidInputError: Unknown session type or notes too long
            ConflictError: A session already exists at that date
        """
        key = normalize_session_date(date)
        session_type, notes = validate_session_input(session_type, notes)

        try:
            async with self.db.transaction() as session:
                await self.access.require_score_authority(caller, "manage the schedule", session)

                result = await session.execute(select(WeeklySession.id).where(WeeklySession.date == key))
                if result.scalar_one_or_none() is not None:
                    raise ConflictError(
                        f"Session at {key.isoformat()} already exists",
                        "❌ A session is already scheduled at that time."
                    )

                weekly_session = WeeklySession(
                    date=key, session_type=session_type, notes=notes, created_by=caller
                )
                session.add(weekly_session)
                await session.flush()
        except IntegrityError:
            raise ConflictError(
                f"Session at {key.isoformat()} already exists",
                "❌ A session is already scheduled at that time."
            )

        self.logger.info(f"{caller} scheduled {session_type} session on {key.isoformat()}")
        return weekly_session

    async def update_session(
        self,
        caller: str,
        date: datetime,
        session_type: str,
        notes: Optional[str] = None
    ) -> WeeklySession:
        key = normalize_session_date(date)
        session_type, notes = validate_session_input(session_type, notes)

        async with self.db.transaction() as session:
            await self.access.require_score_authority(caller, "manage the schedule", session)
            weekly_session = await self._get_existing(session, key)
            weekly_session.session_type = session_type
            weekly_session.notes = notes
            await session.flush()

        self.logger.info(f"{caller} updated session on {key.isoformat()}")
        return weekly_session

    async def delete_session(self, caller: str, date: datetime) -> None:
        key = normalize_session_date(date)

        async with self.db.transaction() as session:
            await self.access.require_score_authority(caller, "manage the schedule", session)
            weekly_session = await self._get_existing(session, key)
            await session.delete(weekly_session)

        self.logger.info(f"{caller} deleted session on {key.isoformat()}")

    async def _get_existing(self, session, key: datetime) -> WeeklySession:
        result = await session.execute(select(WeeklySession).where(WeeklySession.date == key))
        weekly_session = result.scalar_one_or_none()
        if weekly_session is None:
            raise NotFoundError(
                f"No session at {key.isoformat()}",
                "❌ No session is scheduled at that time."
            )
        return weekly_session
