import pytest

from club.database.models import UserRole
from club.utils.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from tests.conftest import ADMIN


async def test_first_caller_becomes_admin(backend):
    assert await backend.initialize_access_control("first") is True
    assert await backend.initialize_access_control("second") is False

    assert await backend.is_admin("first")
    assert not await backend.is_admin("second")


async def test_roles_resolve_for_members_and_guests(club):
    assert await club.get_role(ADMIN) == UserRole.ADMIN
    assert await club.get_role("alice") == UserRole.USER
    assert await club.get_role("stranger") == UserRole.GUEST


async def test_score_auth_admin_appointment_and_removal(club):
    await club.appoint_score_auth_admin(ADMIN, "carol")

    assert await club.is_score_auth_admin("carol")
    assert not await club.is_admin("carol")
    assert await club.get_score_auth_admins() == ["carol"]

    await club.remove_score_auth_admin(ADMIN, "carol")

    assert await club.get_role("carol") == UserRole.USER
    assert await club.get_score_auth_admins() == []
    with pytest.raises(NotFoundError):
        await club.remove_score_auth_admin(ADMIN, "carol")


async def test_only_admins_manage_roles(club):
    with pytest.raises(ForbiddenError):
        await club.appoint_score_auth_admin("alice", "bob")
    with pytest.raises(ForbiddenError):
        await club.assign_role("alice", "alice", UserRole.ADMIN)

    await club.appoint_score_auth_admin(ADMIN, "carol")
    with pytest.raises(ForbiddenError):
        await club.appoint_score_auth_admin("carol", "bob")


async def test_admin_cannot_be_made_score_auth_admin(club):
    with pytest.raises(ConflictError):
        await club.appoint_score_auth_admin(ADMIN, ADMIN)


async def test_assign_role_keeps_at_least_one_admin(club):
    with pytest.raises(ConflictError):
        await club.assign_role(ADMIN, ADMIN, UserRole.USER)

    await club.assign_role(ADMIN, "alice", UserRole.ADMIN)
    await club.assign_role("alice", ADMIN, UserRole.USER)

    assert await club.is_admin("alice")
    assert not await club.is_admin(ADMIN)


async def test_guest_role_is_not_assignable(club):
    with pytest.raises(InvalidInputError):
        await club.assign_role(ADMIN, "alice", UserRole.GUEST)


async def test_role_changes_are_audited(club):
    await club.appoint_score_auth_admin(ADMIN, "carol")
    await club.remove_score_auth_admin(ADMIN, "carol")

    actions = [entry.action for entry in await club.db.get_audit_log()]

    assert actions[:2] == ["remove_score_auth_admin", "appoint_score_auth_admin"]
