"""
Club-wide constants.

Values that are fixed by club rules rather than deployment live here;
tunable values live in club.config.Config.
"""

class CategoryConstants:
    """Skill categories, ordered from highest to lowest rated."""

    CATEGORY_NAMES = (
        "Expert Pros",
        "Expert Elites",
        "Expert Club",
        "Casuals Club",
        "Casuals Newbie",
        "Beginners Club",
        "Beginners Newbies",
        "Learners",
    )

    CATEGORY_COUNT = len(CATEGORY_NAMES)

class TournamentConstants:
    """Constants for best-of-three tournament matches."""

    VALID_SCORES = frozenset({(2, 0), (2, 1), (1, 2), (0, 2)})

class ScheduleConstants:
    """Constants for the weekly schedule."""

    SESSION_TYPES = ("Practice", "Match", "Tournament")

    DEFAULT_SESSION_TYPE = "Practice"

    MAX_NOTES_LENGTH = 500
