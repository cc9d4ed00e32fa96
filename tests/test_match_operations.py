import asyncio

import pytest

from club.database.models import MatchStatus, MatchKind
from club.utils.exceptions import (
    ForbiddenError, InvalidInputError, MatchNotFoundError, MemberNotFoundError, SelfApprovalError
)
from tests.conftest import ADMIN


async def rating(club, identity):
    return (await club.get_profile(identity)).elo_rating


async def test_submit_creates_pending_match(club):
    match = await club.submit_match_score("alice", "bob", 3, 1)

    assert match.status == MatchStatus.PENDING
    assert (match.player_a, match.player_b) == ("alice", "bob")
    assert match.submitted_by == "alice"
    assert [m.id for m in await club.get_pending_matches("bob")] == [match.id]


async def test_approval_applies_elo_once(club):
    match = await club.submit_match_score("alice", "bob", 3, 1)

    approved = await club.approve_match("bob", match.id)

    assert approved.status == MatchStatus.APPROVED
    assert (approved.rating_change_a, approved.rating_change_b) == (20, -20)
    assert approved.k_factor == 40
    assert await rating(club, "alice") == 1220
    assert await rating(club, "bob") == 1180

    with pytest.raises(MatchNotFoundError):
        await club.approve_match("bob", match.id)
    assert await rating(club, "alice") == 1220


async def test_approval_records_history_for_both_players(club):
    match = await club.submit_match_score("alice", "bob", 3, 1)
    await club.approve_match("bob", match.id)

    alice_history = await club.get_player_match_history("alice")
    bob_history = await club.get_player_match_history("bob")

    assert len(alice_history) == len(bob_history) == 1
    assert alice_history[0].opponent == "bob"
    assert alice_history[0].result.value == "win"
    assert alice_history[0].match_kind == MatchKind.REGULAR
    assert bob_history[0].rating_change == -20
    assert bob_history[0].new_rating == 1180

    alice = await club.get_profile("alice")
    assert (alice.wins, alice.losses, alice.matches_played) == (1, 0, 1)


async def test_rejection_leaves_ratings_untouched(club):
    match = await club.submit_match_score("alice", "bob", 3, 1)

    rejected = await club.reject_match("bob", match.id, "  wrong score  ")

    assert rejected.status == MatchStatus.REJECTED
    assert rejected.rejection_reason == "wrong score"
    assert await rating(club, "alice") == 1200
    assert await rating(club, "bob") == 1200
    assert await club.get_player_match_history("alice") == []

    with pytest.raises(MatchNotFoundError):
        await club.approve_match("bob", match.id)


@pytest.mark.parametrize("reason", [None, "", "   ", "x" * 256])
async def test_rejection_reason_is_required_and_capped(club, reason):
    match = await club.submit_match_score("alice", "bob", 3, 1)

    with pytest.raises(InvalidInputError):
        await club.reject_match("bob", match.id, reason)

    assert (await club.get_match(match.id)).status == MatchStatus.PENDING


async def test_player_a_cannot_approve_own_submission(club):
    match = await club.submit_match_score("alice", "bob", 3, 1)

    with pytest.raises(SelfApprovalError):
        await club.approve_match("alice", match.id)
    with pytest.raises(ForbiddenError):
        await club.reject_match("alice", match.id, "changed my mind")


async def test_third_party_cannot_approve(club):
    match = await club.submit_match_score("alice", "bob", 3, 1)

    with pytest.raises(ForbiddenError) as exc_info:
        await club.approve_match("carol", match.id)
    assert not isinstance(exc_info.value, SelfApprovalError)


async def test_admin_and_score_auth_admin_can_approve(club):
    await club.appoint_score_auth_admin(ADMIN, "carol")
    first = await club.submit_match_score("alice", "bob", 3, 1)
    second = await club.submit_match_score("bob", "alice", 3, 2)

    await club.approve_match("carol", first.id)
    await club.approve_match(ADMIN, second.id)

    assert len(await club.get_approved_matches()) == 2


@pytest.mark.parametrize("score_a, score_b", [(2, 2), (-1, 3), (0, 0)])
async def test_invalid_scores_are_rejected(club, score_a, score_b):
    with pytest.raises(InvalidInputError):
        await club.submit_match_score("alice", "bob", score_a, score_b)
    assert await club.get_pending_matches() == []


async def test_cannot_play_against_yourself(club):
    with pytest.raises(InvalidInputError):
        await club.submit_match_score("alice", "alice", 3, 1)


async def test_unknown_player_is_not_found(club):
    with pytest.raises(MemberNotFoundError):
        await club.submit_match_score("alice", "nobody", 3, 1)
    with pytest.raises(MemberNotFoundError):
        await club.submit_match_score("stranger", "alice", 3, 1)


async def test_proxy_submission_needs_score_authority(club):
    with pytest.raises(ForbiddenError):
        await club.submit_match("carol", "alice", "bob", 3, 1)

    match = await club.submit_match(ADMIN, "alice", "bob", 3, 1)
    assert match.submitted_by == ADMIN
    await club.approve_match("bob", match.id)


async def test_unknown_match_is_not_found(club):
    with pytest.raises(MatchNotFoundError):
        await club.approve_match("bob", 9999)


async def test_concurrent_approvals_touching_one_player_do_not_lose_updates(club):
    vs_bob = await club.submit_match_score("alice", "bob", 3, 0)
    vs_carol = await club.submit_match_score("alice", "carol", 3, 0)

    await asyncio.gather(
        club.approve_match("bob", vs_bob.id),
        club.approve_match("carol", vs_carol.id),
    )

    # +20 against a 1200 opponent, then +19 against the other 1200 opponent
    assert await rating(club, "alice") == 1239
    assert await rating(club, "bob") + await rating(club, "carol") == 2361

    history = await club.get_player_match_history("alice")
    assert len(history) == 2
    assert history[1].old_rating == history[0].new_rating


async def test_concurrent_double_approval_rates_once(club):
    match = await club.submit_match_score("alice", "bob", 3, 1)

    results = await asyncio.gather(
        club.approve_match("bob", match.id),
        club.approve_match(ADMIN, match.id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, MatchNotFoundError) for r in results) == 1
    assert await rating(club, "alice") == 1220
    assert len(await club.get_player_match_history("alice")) == 1


async def test_deleted_player_keeps_history_and_blocks_approval(club):
    approved = await club.submit_match_score("alice", "bob", 3, 1)
    await club.approve_match("bob", approved.id)
    pending = await club.submit_match_score("alice", "bob", 3, 2)

    await club.delete_member(ADMIN, "bob")

    assert len(await club.get_player_match_history("bob")) == 1
    assert (await club.get_match(approved.id)).status == MatchStatus.APPROVED
    with pytest.raises(MemberNotFoundError):
        await club.approve_match(ADMIN, pending.id)
    assert (await club.get_match(pending.id)).status == MatchStatus.PENDING
