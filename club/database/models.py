from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, LargeBinary,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum

Base = declarative_base()

class MatchStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class MatchResult(Enum):
    WIN = "win"
    LOSS = "loss"

class MatchKind(Enum):
    REGULAR = "regular"
    TOURNAMENT = "tournament"

class TournamentStatus(Enum):
    NOT_STARTED = "notStarted"
    ANNOUNCED = "announced"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"

class UserRole(Enum):
    ADMIN = "admin"
    SCORE_AUTH_ADMIN = "score_auth_admin"
    USER = "user"
    GUEST = "guest"

# ============================================================================
# Member Store
# ============================================================================

class Member(Base):
    __tablename__ = 'members'

    id = Column(Integer, primary_key=True)
    identity = Column(String(200), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    photo = Column(LargeBinary, nullable=True)

    # Rating and record, mutated only under Database.rating_lock
    elo_rating = Column(Integer, nullable=False, default=1200)
    matches_played = Column(Integer, default=0)
    wins = Column(Integer, default=0)
    losses = Column(Integer, default=0)

    # Metadata
    registered_at = Column(DateTime, default=func.now())
    last_active = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint('elo_rating >= 0', name='ck_member_rating_non_negative'),
        CheckConstraint("name <> ''", name='ck_member_name_not_empty'),
    )

    @property
    def win_rate(self) -> float:
        if not self.matches_played:
            return 0.0
        return (self.wins / self.matches_played) * 100

    def __repr__(self):
        return f"<Member(identity='{self.identity}', name='{self.name}', elo={self.elo_rating})>"

class ClaimRecord(Base):
    """Pre-created member data waiting for an identity to claim it with a one-time code"""
    __tablename__ = 'claim_records'

    id = Column(Integer, primary_key=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    elo_rating = Column(Integer, nullable=False, default=1200)
    photo = Column(LargeBinary, nullable=True)

    created_by = Column(String(200))
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        # Code deliberately omitted
        return f"<ClaimRecord(id={self.id}, name='{self.name}')>"

class RoleAssignment(Base):
    __tablename__ = 'role_assignments'

    id = Column(Integer, primary_key=True)
    identity = Column(String(200), unique=True, nullable=False, index=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.USER)

    assigned_by = Column(String(200))
    assigned_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<RoleAssignment(identity='{self.identity}', role={self.role.value})>"

# ============================================================================
# Regular matches
# ============================================================================

class Match(Base):
    """
    A regular ladder match submitted by player A (or an admin) and
    approved or rejected by player B (or an admin).
    """
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)

    player_a = Column(String(200), nullable=False, index=True)
    player_b = Column(String(200), nullable=False, index=True)
    score_a = Column(Integer, nullable=False)
    score_b = Column(Integer, nullable=False)

    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING, index=True)
    rejection_reason = Column(String(255))

    # Filled on approval
    k_factor = Column(Integer, default=0)
    rating_change_a = Column(Integer, default=0)
    rating_change_b = Column(Integer, default=0)

    # Audit
    submitted_by = Column(String(200), nullable=False)
    submitted_at = Column(DateTime, nullable=False)
    resolved_by = Column(String(200))
    resolved_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint('player_a', 'player_b', 'submitted_at', name='uq_match_pair_timestamp'),
        CheckConstraint('score_a <> score_b', name='ck_match_no_ties'),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == MatchStatus.PENDING

    @property
    def winner(self) -> str:
        return self.player_a if self.score_a > self.score_b else self.player_b

    def __repr__(self):
        return f"<Match(id={self.id}, {self.player_a} {self.score_a}-{self.score_b} {self.player_b}, status={self.status.value})>"

class RatingHistory(Base):
    """
    One row per player per approved match, regular or tournament.

    This is each member's match history as seen from their own side, and the
    source of the approved-match count that drives K-factor selection. Rows
    are never deleted, not even when the member is.
    """
    __tablename__ = 'rating_history'

    id = Column(Integer, primary_key=True)
    identity = Column(String(200), nullable=False, index=True)
    opponent = Column(String(200), nullable=False)

    own_score = Column(Integer, nullable=False)
    opponent_score = Column(Integer, nullable=False)
    result = Column(SQLEnum(MatchResult), nullable=False)

    old_rating = Column(Integer, nullable=False)
    new_rating = Column(Integer, nullable=False)
    rating_change = Column(Integer, nullable=False)
    k_factor = Column(Integer, nullable=False)

    match_kind = Column(SQLEnum(MatchKind), nullable=False)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=True)
    tournament_match_id = Column(Integer, ForeignKey('tournament_matches.id'), nullable=True)

    recorded_at = Column(DateTime, default=func.now())

    match = relationship("Match")
    tournament_match = relationship("TournamentMatch")

    def __repr__(self):
        return f"<RatingHistory(identity='{self.identity}', change={self.rating_change}, new_rating={self.new_rating})>"

# ============================================================================
# Tournament
# ============================================================================

class TournamentState(Base):
    """Singleton row holding the club tournament lifecycle"""
    __tablename__ = 'tournament_state'

    id = Column(Integer, primary_key=True)
    status = Column(SQLEnum(TournamentStatus), nullable=False, default=TournamentStatus.NOT_STARTED)
    current_round = Column(Integer, nullable=False, default=0)

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<TournamentState(status={self.status.value}, round={self.current_round})>"

class TournamentRegistration(Base):
    __tablename__ = 'tournament_registrations'

    id = Column(Integer, primary_key=True)
    identity = Column(String(200), unique=True, nullable=False, index=True)

    registered_by = Column(String(200))
    registered_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<TournamentRegistration(identity='{self.identity}')>"

class TournamentRound(Base):
    __tablename__ = 'tournament_rounds'

    id = Column(Integer, primary_key=True)
    round_number = Column(Integer, unique=True, nullable=False)
    is_complete = Column(Boolean, default=False)

    created_at = Column(DateTime, default=func.now())

    matches = relationship(
        "TournamentMatch",
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="TournamentMatch.position"
    )

    @property
    def has_pending_matches(self) -> bool:
        return any(m.status == MatchStatus.PENDING for m in self.matches)

    def __repr__(self):
        return f"<TournamentRound(number={self.round_number}, matches={len(self.matches)}, complete={self.is_complete})>"

class TournamentMatch(Base):
    """A best-of-three tournament match, addressed by (round_number, position)"""
    __tablename__ = 'tournament_matches'

    id = Column(Integer, primary_key=True)
    round_id = Column(Integer, ForeignKey('tournament_rounds.id'), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)

    player_a = Column(String(200), nullable=False)
    player_b = Column(String(200), nullable=False)
    score_a = Column(Integer, nullable=False)
    score_b = Column(Integer, nullable=False)
    table_number = Column(Integer, nullable=False)

    status = Column(SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING)
    rejection_reason = Column(String(255))

    # Filled on approval
    k_factor_a = Column(Integer, default=0)
    k_factor_b = Column(Integer, default=0)
    rating_change_a = Column(Integer, default=0)
    rating_change_b = Column(Integer, default=0)

    submitted_by = Column(String(200), nullable=False)
    submitted_at = Column(DateTime, nullable=False)
    resolved_by = Column(String(200))
    resolved_at = Column(DateTime)

    round = relationship("TournamentRound", back_populates="matches")

    __table_args__ = (
        UniqueConstraint('round_id', 'position', name='uq_tournament_match_position'),
    )

    @property
    def winner(self) -> str:
        return self.player_a if self.score_a > self.score_b else self.player_b

    def __repr__(self):
        return f"<TournamentMatch(round_id={self.round_id}, position={self.position}, status={self.status.value})>"

class TournamentPlayerStats(Base):
    """Standings accumulated from approved tournament matches only"""
    __tablename__ = 'tournament_player_stats'

    id = Column(Integer, primary_key=True)
    identity = Column(String(200), unique=True, nullable=False, index=True)

    wins = Column(Integer, default=0)
    losses = Column(Integer, default=0)
    games_won = Column(Integer, default=0)
    games_lost = Column(Integer, default=0)
    points = Column(Integer, default=0)

    @property
    def game_difference(self) -> int:
        return (self.games_won or 0) - (self.games_lost or 0)

    def __repr__(self):
        return f"<TournamentPlayerStats(identity='{self.identity}', W={self.wins}, L={self.losses}, pts={self.points})>"

# ============================================================================
# Schedule and photos
# ============================================================================

class WeeklySession(Base):
    __tablename__ = 'weekly_sessions'

    id = Column(Integer, primary_key=True)
    date = Column(DateTime, unique=True, nullable=False, index=True)
    session_type = Column(String(50), nullable=False)
    notes = Column(Text, default='')

    created_by = Column(String(200))
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<WeeklySession(date={self.date}, type='{self.session_type}')>"

class Photo(Base):
    """Gallery photo; the bytes live in object storage, only the reference is kept"""
    __tablename__ = 'photos'

    id = Column(Integer, primary_key=True)
    photo_key = Column(String(200), unique=True, nullable=False, index=True)
    storage_ref = Column(String(500), nullable=False)

    uploader = Column(String(200), nullable=False)
    uploader_name = Column(String(100), nullable=False)
    uploaded_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Photo(key='{self.photo_key}', uploader='{self.uploader_name}')>"

class BannerPhoto(Base):
    """
    A photo known to the homepage banner.

    Uploaded banner photos (is_upload=True) exist whether or not they are
    displayed; gallery photos only get a row while they are displayed.
    position is None when the photo is not currently in the banner.
    """
    __tablename__ = 'banner_photos'

    id = Column(Integer, primary_key=True)
    photo_key = Column(String(200), unique=True, nullable=False, index=True)
    storage_ref = Column(String(500), nullable=True)
    position = Column(Integer, nullable=True)
    is_upload = Column(Boolean, nullable=False, default=True)

    uploader = Column(String(200), nullable=False)
    uploader_name = Column(String(100), nullable=False)
    uploaded_at = Column(DateTime, default=func.now())

    @property
    def is_displayed(self) -> bool:
        return self.position is not None

    def __repr__(self):
        return f"<BannerPhoto(key='{self.photo_key}', position={self.position})>"

class AuditLog(Base):
    __tablename__ = 'audit_log'

    id = Column(Integer, primary_key=True)
    actor = Column(String(200), nullable=False)
    action = Column(String(50), nullable=False, index=True)
    details = Column(Text)  # JSON

    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<AuditLog(actor='{self.actor}', action='{self.action}')>"
