"""
Custom exceptions for the club backend with user-friendly error messages.

Every operation failure maps onto one of five kinds so callers can render a
precise message: NotFoundError, ForbiddenError, InvalidInputError,
InvalidStateTransitionError and ConflictError.
"""

class ClubError(Exception):
    """Base exception for club-related errors."""
    kind = "error"

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

# ============================================================================
# Error kinds
# ============================================================================

class NotFoundError(ClubError):
    """Raised when a match, member, claim code or round index is missing."""
    kind = "not_found"

class ForbiddenError(ClubError):
    """Raised when the caller lacks the role or is not the authorized party."""
    kind = "forbidden"

class InvalidInputError(ClubError):
    """Raised when request data fails validation."""
    kind = "invalid_input"

class InvalidStateTransitionError(ClubError):
    """Raised when a tournament action is attempted from the wrong status."""
    kind = "invalid_state_transition"

    def __init__(self, action: str, current_status: str):
        super().__init__(
            f"Cannot {action} tournament while status is '{current_status}'",
            f"❌ The tournament cannot {action} right now (status: {current_status})."
        )
        self.action = action
        self.current_status = current_status

class ConflictError(ClubError):
    """Raised when the target already exists or was already consumed."""
    kind = "conflict"

# ============================================================================
# Specific errors
# ============================================================================

class MemberNotFoundError(NotFoundError):
    def __init__(self, identity: str):
        super().__init__(
            f"Member '{identity}' not found",
            "❌ That player is not a registered member!"
        )
        self.identity = identity

class MatchNotFoundError(NotFoundError):
    def __init__(self, match_ref):
        super().__init__(
            f"No pending match found for {match_ref}",
            "❌ Match not found or already processed."
        )
        self.match_ref = match_ref

class ClaimCodeNotFoundError(NotFoundError):
    def __init__(self):
        # Never echo the code back
        super().__init__(
            "Claim code not found or already used",
            "❌ Invalid or already used claim code."
        )

class NotRegisteredError(NotFoundError):
    def __init__(self, identity: str):
        super().__init__(
            f"Player '{identity}' is not registered for the tournament",
            "❌ You are not registered for this tournament."
        )
        self.identity = identity

class AlreadyRegisteredError(ConflictError):
    def __init__(self, identity: str):
        super().__init__(
            f"Player '{identity}' is already registered for the tournament",
            "❌ You are already registered for this tournament."
        )
        self.identity = identity

class AlreadyMemberError(ConflictError):
    def __init__(self, identity: str):
        super().__init__(
            f"Identity '{identity}' is already linked to a member",
            "❌ Your account is already linked to a member profile."
        )
        self.identity = identity

class InvalidScoreError(InvalidInputError):
    def __init__(self, score_a: int, score_b: int, reason: str):
        super().__init__(
            f"Invalid score {score_a}-{score_b}: {reason}",
            f"❌ {reason}"
        )
        self.score_a = score_a
        self.score_b = score_b

class SelfApprovalError(ForbiddenError):
    def __init__(self, identity: str):
        super().__init__(
            f"Player '{identity}' cannot approve their own submission",
            "❌ You cannot approve a match you submitted. Your opponent must approve it."
        )
        self.identity = identity

class DatabaseError(ClubError):
    """Raised when database operations fail."""
    kind = "database"

    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Database error during {operation}: {details}",
            "❌ Database error occurred. Please try again later."
        )
