from datetime import datetime, timezone, timedelta

import pytest

from club.utils.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from tests.conftest import ADMIN

MONDAY = datetime(2026, 3, 2, 18, 0)
THURSDAY = datetime(2026, 3, 5, 18, 0)


async def test_schedule_is_ordered_by_date(club):
    await club.create_session(ADMIN, THURSDAY, "Match", "League night")
    await club.create_session(ADMIN, MONDAY, "Practice")

    schedule = await club.get_schedule()

    assert [(s.date, s.session_type) for s in schedule] == [(MONDAY, "Practice"), (THURSDAY, "Match")]
    assert schedule[1].notes == "League night"


async def test_update_and_delete_by_date(club):
    await club.create_session(ADMIN, MONDAY, "Practice")

    updated = await club.update_session(ADMIN, MONDAY, "Tournament", "Round 1")
    assert (updated.session_type, updated.notes) == ("Tournament", "Round 1")

    await club.delete_session(ADMIN, MONDAY)
    assert await club.get_schedule() == []

    with pytest.raises(NotFoundError):
        await club.delete_session(ADMIN, MONDAY)
    with pytest.raises(NotFoundError):
        await club.update_session(ADMIN, MONDAY, "Practice")


async def test_aware_dates_are_keyed_in_utc(club):
    aware = datetime(2026, 3, 2, 20, 0, tzinfo=timezone(timedelta(hours=2)))
    await club.create_session(ADMIN, aware, "Practice")

    with pytest.raises(ConflictError):
        await club.create_session(ADMIN, MONDAY, "Match")


async def test_duplicate_date_is_a_conflict(club):
    await club.create_session(ADMIN, MONDAY, "Practice")

    with pytest.raises(ConflictError):
        await club.create_session(ADMIN, MONDAY, "Match")


async def test_session_type_is_validated(club):
    with pytest.raises(InvalidInputError):
        await club.create_session(ADMIN, MONDAY, "Party")


async def test_schedule_management_needs_score_authority(club):
    with pytest.raises(ForbiddenError):
        await club.create_session("alice", MONDAY, "Practice")

    await club.appoint_score_auth_admin(ADMIN, "carol")
    await club.create_session("carol", MONDAY, "Practice")
    assert len(await club.get_schedule()) == 1
