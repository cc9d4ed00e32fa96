"""
Club backend entry point.

ClubBackend wires every operations class and service over one Database, the
way the UI layer consumes them. Every mutating call takes the caller's
identity, already authenticated by the identity provider.

Usage:
    backend = ClubBackend()
    await backend.initialize()
    match = await backend.submit_match_score("alice", "bob", 3, 1)
    await backend.approve_match("bob", match.id)
    await backend.close()
"""

from typing import Optional

from club.config import Config
from club.database.database import Database
from club.database.match_operations import MatchOperations
from club.operations.access_control import AccessControl
from club.operations.member_operations import MemberOperations
from club.operations.photo_operations import PhotoOperations
from club.operations.schedule_operations import ScheduleOperations
from club.operations.tournament_operations import TournamentOperations
from club.services.leaderboard import LeaderboardService
from club.services.photo_storage import LocalPhotoStorage
from club.services.profile import ProfileService
from club.utils.logger import setup_logger

logger = setup_logger(__name__)


class ClubBackend:
    """Facade over the club's operations and read services"""

    def __init__(self, database_url: Optional[str] = None, photo_storage=None):
        Config.validate()
        self.db = Database(database_url)
        self._photo_storage = photo_storage

        self.access: Optional[AccessControl] = None
        self.matches: Optional[MatchOperations] = None
        self.tournament: Optional[TournamentOperations] = None
        self.members: Optional[MemberOperations] = None
        self.schedule: Optional[ScheduleOperations] = None
        self.photos: Optional[PhotoOperations] = None
        self.leaderboard: Optional[LeaderboardService] = None
        self.profiles: Optional[ProfileService] = None

    async def initialize(self):
        """Open the database and build the operations layer"""
        await self.db.initialize()

        self.access = AccessControl(self.db)
        self.matches = MatchOperations(self.db, self.access)
        self.tournament = TournamentOperations(self.db, self.access)
        self.members = MemberOperations(self.db, self.access)
        self.schedule = ScheduleOperations(self.db, self.access)
        self.photos = PhotoOperations(self.db, self.access, self._photo_storage or LocalPhotoStorage())
        self.leaderboard = LeaderboardService(self.db.session_factory)
        self.profiles = ProfileService(self.db.session_factory, self.leaderboard)

        logger.info("Club backend ready")

    async def close(self):
        await self.db.close()

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # ============================================================================
    # Access control
    # ============================================================================

    async def initialize_access_control(self, caller: str) -> bool:
        return await self.access.initialize_access_control(caller)

    async def is_admin(self, identity: str) -> bool:
        return await self.access.is_admin(identity)

    async def is_score_auth_admin(self, identity: str) -> bool:
        return await self.access.is_score_auth_admin(identity)

    async def get_role(self, identity: str):
        return await self.access.get_role(identity)

    async def assign_role(self, caller: str, identity: str, role):
        return await self.access.assign_role(caller, identity, role)

    async def appoint_score_auth_admin(self, caller: str, identity: str):
        return await self.access.appoint_score_auth_admin(caller, identity)

    async def remove_score_auth_admin(self, caller: str, identity: str):
        return await self.access.remove_score_auth_admin(caller, identity)

    async def get_score_auth_admins(self):
        return await self.access.get_score_auth_admins()

    # ============================================================================
    # Members, profiles and claim codes
    # ============================================================================

    async def save_profile(self, caller: str, name: str, photo: Optional[bytes] = None):
        return await self.members.save_profile(caller, name, photo)

    async def get_profile(self, identity: str):
        return await self.members.get_profile(identity)

    async def update_member_photo(self, caller: str, photo: Optional[bytes]):
        return await self.members.update_member_photo(caller, photo)

    async def get_member_profile(self, identity: str):
        return await self.profiles.get_profile_data(identity)

    async def create_member_with_claim_code(
        self, caller: str, name: str, photo: Optional[bytes] = None, elo_rating: Optional[int] = None
    ) -> str:
        return await self.members.create_member_with_claim_code(caller, name, photo, elo_rating)

    async def claim_member_account(self, caller: str, code: str):
        return await self.members.claim_member_account(caller, code)

    async def get_unclaimed_members(self, caller: str):
        return await self.members.get_unclaimed_members(caller)

    async def delete_member(self, caller: str, identity: str):
        return await self.members.delete_member(caller, identity)

    async def import_members(self, caller: str, records) -> int:
        return await self.members.import_members(caller, records)

    # ============================================================================
    # Regular matches
    # ============================================================================

    async def submit_match(self, caller: str, player_a: str, player_b: str, score_a: int, score_b: int):
        return await self.matches.submit_match(caller, player_a, player_b, score_a, score_b)

    async def submit_match_score(self, caller: str, opponent: str, score_a: int, score_b: int):
        return await self.matches.submit_match_score(caller, opponent, score_a, score_b)

    async def approve_match(self, caller: str, match_id: int):
        return await self.matches.approve_match(caller, match_id)

    async def reject_match(self, caller: str, match_id: int, reason: str):
        return await self.matches.reject_match(caller, match_id, reason)

    async def get_match(self, match_id: int):
        return await self.matches.get_match(match_id)

    async def get_pending_matches(self, identity: Optional[str] = None):
        return await self.matches.get_pending_matches(identity)

    async def get_approved_matches(self, limit: Optional[int] = None):
        return await self.matches.get_approved_matches(limit)

    async def get_player_match_history(self, identity: str):
        return await self.db.get_rating_history(identity)

    # ============================================================================
    # Tournament
    # ============================================================================

    async def announce_tournament(self, caller: str):
        return await self.tournament.announce_tournament(caller)

    async def start_tournament(self, caller: str):
        return await self.tournament.start_tournament(caller)

    async def pause_tournament(self, caller: str):
        return await self.tournament.pause_tournament(caller)

    async def resume_tournament(self, caller: str):
        return await self.tournament.resume_tournament(caller)

    async def end_tournament(self, caller: str):
        return await self.tournament.end_tournament(caller)

    async def reset_tournament(self, caller: str):
        return await self.tournament.reset_tournament(caller)

    async def register_for_tournament(self, caller: str):
        return await self.tournament.register_for_tournament(caller)

    async def unregister_from_tournament(self, caller: str):
        return await self.tournament.unregister_from_tournament(caller)

    async def add_player_to_tournament(self, caller: str, identity: str):
        return await self.tournament.add_player_to_tournament(caller, identity)

    async def remove_player_from_tournament(self, caller: str, identity: str):
        return await self.tournament.remove_player_from_tournament(caller, identity)

    async def submit_tournament_match(self, caller: str, player_a: str, player_b: str,
                                      score_a: int, score_b: int, round_number: int, table_number: int):
        return await self.tournament.submit_tournament_match(
            caller, player_a, player_b, score_a, score_b, round_number, table_number
        )

    async def submit_tournament_match_score(self, caller: str, opponent: str, score_a: int, score_b: int,
                                            round_number: int, table_number: int):
        return await self.tournament.submit_tournament_match_score(
            caller, opponent, score_a, score_b, round_number, table_number
        )

    async def approve_tournament_match(self, caller: str, round_number: int, index: int):
        return await self.tournament.approve_tournament_match(caller, round_number, index)

    async def reject_tournament_match(self, caller: str, round_number: int, index: int,
                                      reason: Optional[str] = None):
        return await self.tournament.reject_tournament_match(caller, round_number, index, reason)

    async def get_tournament_state(self):
        return await self.tournament.get_tournament_state()

    async def is_tournament_active(self) -> bool:
        return await self.tournament.is_tournament_active()

    async def get_registered_players(self):
        return await self.tournament.get_registered_players()

    async def get_pending_tournament_matches(self):
        return await self.tournament.get_pending_tournament_matches()

    # ============================================================================
    # Leaderboard
    # ============================================================================

    async def get_leaderboard(self):
        return await self.leaderboard.get_leaderboard()

    async def get_category_leaderboards(self):
        return await self.leaderboard.get_category_leaderboards()

    async def get_member_category(self, identity: str):
        return await self.leaderboard.get_member_category(identity)

    async def get_member_directory(self):
        return await self.leaderboard.get_member_directory()

    async def get_tournament_leaderboard(self):
        return await self.leaderboard.get_tournament_leaderboard()

    # ============================================================================
    # Schedule
    # ============================================================================

    async def get_schedule(self):
        return await self.schedule.get_schedule()

    async def create_session(self, caller: str, date, session_type: str, notes: Optional[str] = None):
        return await self.schedule.create_session(caller, date, session_type, notes)

    async def update_session(self, caller: str, date, session_type: str, notes: Optional[str] = None):
        return await self.schedule.update_session(caller, date, session_type, notes)

    async def delete_session(self, caller: str, date):
        return await self.schedule.delete_session(caller, date)

    # ============================================================================
    # Photos and banner
    # ============================================================================

    async def upload_photo(self, caller: str, photo_key: str, data: bytes, uploader_name: str):
        return await self.photos.upload_photo(caller, photo_key, data, uploader_name)

    async def delete_photo(self, caller: str, photo_key: str):
        return await self.photos.delete_photo(caller, photo_key)

    async def get_photo(self, photo_key: str):
        return await self.photos.get_photo(photo_key)

    async def get_photos(self):
        return await self.photos.get_photos()

    async def upload_banner_photo(self, caller: str, photo_key: str, data: bytes, uploader_name: str):
        return await self.photos.upload_banner_photo(caller, photo_key, data, uploader_name)

    async def add_photo_to_banner(self, caller: str, photo_key: str):
        return await self.photos.add_photo_to_banner(caller, photo_key)

    async def remove_photo_from_banner(self, caller: str, photo_key: str):
        return await self.photos.remove_photo_from_banner(caller, photo_key)

    async def delete_banner_photo(self, caller: str, photo_key: str):
        return await self.photos.delete_banner_photo(caller, photo_key)

    async def reorder_banner_photos(self, caller: str, new_order):
        return await self.photos.reorder_banner_photos(caller, new_order)

    async def get_banner_photos(self):
        return await self.photos.get_banner_photos()

    async def get_all_banner_photo_keys(self):
        return await self.photos.get_all_banner_photo_keys()

    async def get_banner_photo_count(self) -> int:
        return await self.photos.get_banner_photo_count()
