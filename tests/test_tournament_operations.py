import pytest
from sqlalchemy.exc import SQLAlchemyError

from club.database.models import MatchKind, TournamentStatus
from club.utils.exceptions import (
    AlreadyRegisteredError, ConflictError, DatabaseError, ForbiddenError, InvalidInputError,
    InvalidScoreError, InvalidStateTransitionError, MatchNotFoundError,
    MemberNotFoundError, NotFoundError, NotRegisteredError, SelfApprovalError
)
from tests.conftest import ADMIN


@pytest.fixture
async def running(club):
    """Active tournament with alice, bob and carol registered"""
    await club.announce_tournament(ADMIN)
    for identity in ("alice", "bob", "carol"):
        await club.register_for_tournament(identity)
    await club.start_tournament(ADMIN)
    return club


async def status(club):
    return (await club.get_tournament_state()).status


async def test_full_lifecycle(club):
    assert await status(club) == TournamentStatus.NOT_STARTED.value

    await club.announce_tournament(ADMIN)
    assert await status(club) == "announced"
    await club.start_tournament(ADMIN)
    assert await club.is_tournament_active()
    await club.pause_tournament(ADMIN)
    assert await status(club) == "paused"
    await club.resume_tournament(ADMIN)
    assert await status(club) == "active"
    await club.end_tournament(ADMIN)

    state = await club.get_tournament_state()
    assert state.status == "completed"
    assert state.started_at is not None
    assert state.ended_at is not None

    await club.reset_tournament(ADMIN)
    assert await status(club) == "notStarted"


async def test_announce_while_active_is_invalid(running):
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await running.announce_tournament(ADMIN)
    assert exc_info.value.current_status == "active"


@pytest.mark.parametrize("action", ["start_tournament", "pause_tournament", "resume_tournament",
                                    "end_tournament", "reset_tournament"])
async def test_transitions_from_not_started_are_invalid(club, action):
    with pytest.raises(InvalidStateTransitionError):
        await getattr(club, action)(ADMIN)
    assert await status(club) == "notStarted"


async def test_only_admins_drive_the_lifecycle(club):
    with pytest.raises(ForbiddenError):
        await club.announce_tournament("alice")
    assert await status(club) == "notStarted"


async def test_registration_rules(club):
    with pytest.raises(InvalidStateTransitionError):
        await club.register_for_tournament("alice")

    await club.announce_tournament(ADMIN)
    await club.register_for_tournament("alice")

    with pytest.raises(AlreadyRegisteredError):
        await club.register_for_tournament("alice")
    with pytest.raises(NotRegisteredError):
        await club.unregister_from_tournament("bob")
    with pytest.raises(MemberNotFoundError):
        await club.register_for_tournament("stranger")

    await club.unregister_from_tournament("alice")
    assert await club.get_registered_players() == []


async def test_registration_stays_open_while_active(running):
    await running.save_profile("dana", "Dana")

    await running.register_for_tournament("dana")
    await running.unregister_from_tournament("carol")

    assert [p.identity for p in await running.get_registered_players()] == ["alice", "bob", "dana"]


@pytest.mark.parametrize("closing_action", ["pause_tournament", "end_tournament"])
async def test_registration_closed_while_paused_or_completed(running, closing_action):
    await running.save_profile("dana", "Dana")
    await getattr(running, closing_action)(ADMIN)

    with pytest.raises(InvalidStateTransitionError):
        await running.register_for_tournament("dana")
    with pytest.raises(InvalidStateTransitionError):
        await running.add_player_to_tournament(ADMIN, "dana")
    with pytest.raises(InvalidStateTransitionError):
        await running.unregister_from_tournament("alice")

    assert len(await running.get_registered_players()) == 3


async def test_racing_registration_is_reported_as_duplicate(club, monkeypatch):
    await club.announce_tournament(ADMIN)
    await club.register_for_tournament("alice")

    async def not_registered(session, identity):
        return False

    # Let the second insert reach the unique constraint, as a concurrent caller would
    monkeypatch.setattr(club.tournament, "_is_registered", not_registered)

    with pytest.raises(AlreadyRegisteredError):
        await club.register_for_tournament("alice")
    assert len(await club.get_registered_players()) == 1


async def test_storage_failure_during_transition_is_a_database_error(club, monkeypatch):
    async def failing_audit_log(*args, **kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(club.db, "add_audit_log", failing_audit_log)

    with pytest.raises(DatabaseError):
        await club.announce_tournament(ADMIN)
    assert await status(club) == "notStarted"


async def test_duplicate_registration_is_a_conflict_and_not_found_is_distinct():
    assert issubclass(AlreadyRegisteredError, ConflictError)
    assert issubclass(NotRegisteredError, NotFoundError)


async def test_admin_registers_other_players(club):
    await club.announce_tournament(ADMIN)

    with pytest.raises(ForbiddenError):
        await club.add_player_to_tournament("alice", "bob")

    await club.add_player_to_tournament(ADMIN, "bob")
    await club.add_player_to_tournament(ADMIN, "carol")
    await club.remove_player_from_tournament(ADMIN, "carol")

    players = await club.get_registered_players()
    assert [(p.identity, p.name, p.rating) for p in players] == [("bob", "Bob", 1200)]


async def test_tied_best_of_three_score_fails_validation_first(club):
    # Tournament is not even active; score validation still comes first
    with pytest.raises(InvalidScoreError):
        await club.submit_tournament_match_score("alice", "bob", 1, 1, 1, 1)


@pytest.mark.parametrize("score_a, score_b", [(1, 1), (3, 0), (2, 2), (1, 0), (0, 0)])
async def test_only_best_of_three_scores_are_accepted(running, score_a, score_b):
    with pytest.raises(InvalidInputError):
        await running.submit_tournament_match_score("alice", "bob", score_a, score_b, 1, 1)
    assert await running.get_pending_tournament_matches() == []


@pytest.mark.parametrize("round_number, table_number", [(0, 1), (11, 1), (1, 0), (1, 8)])
async def test_round_and_table_ranges(running, round_number, table_number):
    with pytest.raises(InvalidInputError):
        await running.submit_tournament_match_score("alice", "bob", 2, 0, round_number, table_number)


async def test_submission_requires_active_tournament(club):
    await club.announce_tournament(ADMIN)
    await club.register_for_tournament("alice")
    await club.register_for_tournament("bob")

    with pytest.raises(InvalidStateTransitionError):
        await club.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)

    await club.start_tournament(ADMIN)
    await club.pause_tournament(ADMIN)
    with pytest.raises(InvalidStateTransitionError):
        await club.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)


async def test_both_players_must_be_registered(club):
    await club.announce_tournament(ADMIN)
    await club.register_for_tournament("alice")
    await club.start_tournament(ADMIN)

    with pytest.raises(NotRegisteredError):
        await club.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)


async def test_proxy_submission_needs_score_authority(running):
    with pytest.raises(ForbiddenError):
        await running.submit_tournament_match("carol", "alice", "bob", 2, 0, 1, 1)

    view = await running.submit_tournament_match(ADMIN, "alice", "bob", 2, 0, 1, 1)
    assert view.index == 0


async def test_approval_updates_ratings_and_standings(running):
    view = await running.submit_tournament_match_score("alice", "bob", 2, 1, 1, 3)
    assert (view.round_number, view.index, view.table_number, view.status) == (1, 0, 3, "pending")

    approved = await running.approve_tournament_match("bob", 1, 0)
    assert approved.status == "approved"
    assert (approved.rating_change_a, approved.rating_change_b) == (20, -20)

    assert (await running.get_profile("alice")).elo_rating == 1220
    assert (await running.get_profile("bob")).elo_rating == 1180

    history = await running.get_player_match_history("alice")
    assert [h.match_kind for h in history] == [MatchKind.TOURNAMENT]

    state = await running.get_tournament_state()
    stats = {s.identity: s for s in state.player_stats}
    assert (stats["alice"].wins, stats["alice"].points, stats["alice"].games_won, stats["alice"].games_lost) == (1, 1, 2, 1)
    assert (stats["bob"].losses, stats["bob"].points, stats["bob"].games_won, stats["bob"].games_lost) == (1, 0, 1, 2)
    assert state.rounds[0].is_complete
    assert state.current_round == 1


async def test_tournament_and_regular_matches_share_k_factor_count(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)
    await running.approve_tournament_match("bob", 1, 0)

    match = await running.submit_match_score("alice", "carol", 3, 0)
    await running.approve_match("carol", match.id)

    history = await running.get_player_match_history("alice")
    assert [h.match_kind for h in history] == [MatchKind.TOURNAMENT, MatchKind.REGULAR]
    assert (await running.get_profile("alice")).matches_played == 2


async def test_self_approval_is_forbidden(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)

    with pytest.raises(SelfApprovalError):
        await running.approve_tournament_match("alice", 1, 0)
    with pytest.raises(ForbiddenError):
        await running.approve_tournament_match("carol", 1, 0)


async def test_missing_match_index_is_not_found(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)

    with pytest.raises(MatchNotFoundError):
        await running.approve_tournament_match("bob", 1, 1)
    with pytest.raises(MatchNotFoundError):
        await running.approve_tournament_match("bob", 2, 0)

    await running.approve_tournament_match("bob", 1, 0)
    with pytest.raises(MatchNotFoundError):
        await running.approve_tournament_match("bob", 1, 0)


async def test_rejection_reason_is_optional(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)

    rejected = await running.reject_tournament_match("bob", 1, 0)

    assert rejected.status == "rejected"
    assert rejected.rejection_reason is None
    assert (await running.get_profile("alice")).elo_rating == 1200
    state = await running.get_tournament_state()
    assert state.player_stats == []
    assert state.rounds[0].is_complete


async def test_rejection_reason_is_capped(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)

    with pytest.raises(InvalidInputError):
        await running.reject_tournament_match("bob", 1, 0, "x" * 256)

    rejected = await running.reject_tournament_match("bob", 1, 0, "x" * 255)
    assert rejected.rejection_reason == "x" * 255


async def test_round_completes_only_when_nothing_is_pending(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)
    await running.submit_tournament_match_score("carol", "alice", 0, 2, 1, 2)

    await running.approve_tournament_match("bob", 1, 0)
    state = await running.get_tournament_state()
    assert not state.rounds[0].is_complete
    assert len(state.pending_matches) == 1

    await running.reject_tournament_match("alice", 1, 1, "wrong table")
    assert (await running.get_tournament_state()).rounds[0].is_complete

    # A new submission re-opens the round
    await running.submit_tournament_match_score("bob", "carol", 2, 1, 1, 3)
    assert not (await running.get_tournament_state()).rounds[0].is_complete


async def test_current_round_tracks_highest_round(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 3, 1)
    await running.submit_tournament_match_score("bob", "carol", 2, 0, 2, 1)

    state = await running.get_tournament_state()
    assert state.current_round == 3
    assert [r.round_number for r in state.rounds] == [2, 3]


async def test_pending_match_can_be_resolved_after_end(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)
    await running.end_tournament(ADMIN)

    await running.approve_tournament_match("bob", 1, 0)
    assert (await running.get_profile("alice")).elo_rating == 1220


async def test_reset_clears_tournament_but_keeps_ratings(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)
    await running.approve_tournament_match("bob", 1, 0)

    with pytest.raises(InvalidStateTransitionError):
        await running.reset_tournament(ADMIN)

    await running.end_tournament(ADMIN)
    await running.reset_tournament(ADMIN)

    state = await running.get_tournament_state()
    assert (state.status, state.current_round) == ("notStarted", 0)
    assert state.rounds == [] and state.player_stats == [] and state.registered_players == []
    assert (await running.get_profile("alice")).elo_rating == 1220
    assert len(await running.get_player_match_history("alice")) == 1


async def test_announcing_after_completion_starts_fresh(running):
    await running.submit_tournament_match_score("alice", "bob", 2, 0, 1, 1)
    await running.approve_tournament_match("bob", 1, 0)
    await running.end_tournament(ADMIN)

    await running.announce_tournament(ADMIN)

    state = await running.get_tournament_state()
    assert state.status == "announced"
    assert state.rounds == [] and state.registered_players == []
    assert await running.get_tournament_leaderboard() == []
