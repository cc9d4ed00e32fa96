import math
from typing import Tuple
from club.config import Config

class EloCalculator:
    """Handles Elo rating calculations for club matches"""

    @staticmethod
    def calculate_expected_score(rating_a: int, rating_b: int) -> float:
        """
        Calculate the expected score for player A against player B

        Args:
            rating_a: Player A's current Elo rating
            rating_b: Player B's current Elo rating

        Returns:
            Expected score (0.0 to 1.0) for player A
        """
        return 1 / (1 + math.pow(10, (rating_b - rating_a) / 400))

    @staticmethod
    def get_k_factor(matches_played: int) -> int:
        """
        Get the K-factor based on number of approved matches played

        Args:
            matches_played: Approved matches before the one being rated

        Returns:
            K-factor to use in Elo calculation
        """
        if matches_played < Config.PROVISIONAL_MATCH_COUNT:
            return Config.K_FACTOR_PROVISIONAL
        if matches_played < Config.ESTABLISHED_MATCH_COUNT:
            return Config.K_FACTOR_STANDARD
        return Config.K_FACTOR_ESTABLISHED

    @staticmethod
    def round_delta(value: float) -> int:
        """Round half away from zero so +x and -x round symmetrically"""
        return int(math.copysign(math.floor(abs(value) + 0.5), value))

    @staticmethod
    def compute_elo_delta(rating_a: int, rating_b: int, score_a: int, score_b: int,
                          k_factor: int) -> Tuple[int, int]:
        """
        Compute rating deltas for both players with a single K-factor

        Each side gets its own rounded delta; deltas are never mirrored.
        Callers guarantee score_a != score_b.

        Returns:
            Tuple of (delta_a, delta_b)
        """
        return EloCalculator.compute_match_deltas(
            rating_a, rating_b, score_a, score_b, k_factor, k_factor
        )

    @staticmethod
    def compute_match_deltas(rating_a: int, rating_b: int, score_a: int, score_b: int,
                             k_factor_a: int, k_factor_b: int) -> Tuple[int, int]:
        """
        Compute rating deltas when each player carries their own K-factor

        Args:
            rating_a: Player A's current Elo rating
            rating_b: Player B's current Elo rating
            score_a: Games won by player A
            score_b: Games won by player B
            k_factor_a: K-factor for player A
            k_factor_b: K-factor for player B

        Returns:
            Tuple of (delta_a, delta_b)
        """
        expected_a = EloCalculator.calculate_expected_score(rating_a, rating_b)
        expected_b = 1 - expected_a

        actual_a = 1.0 if score_a > score_b else 0.0
        actual_b = 1.0 - actual_a

        delta_a = EloCalculator.round_delta(k_factor_a * (actual_a - expected_a))
        delta_b = EloCalculator.round_delta(k_factor_b * (actual_b - expected_b))
        return delta_a, delta_b

    @staticmethod
    def apply_delta(rating: int, delta: int) -> int:
        """Apply a delta to a rating; ratings never go below zero"""
        return max(0, rating + delta)

    @staticmethod
    def calculate_win_probability(rating_a: int, rating_b: int) -> float:
        """
        Calculate win probability for player A against player B

        Returns:
            Win probability as percentage (0.0 to 100.0)
        """
        expected_score = EloCalculator.calculate_expected_score(rating_a, rating_b)
        return expected_score * 100

    @staticmethod
    def format_elo_change(elo_change: int) -> str:
        """Format Elo change for display"""
        if elo_change > 0:
            return f"+{elo_change}"
        elif elo_change < 0:
            return str(elo_change)
        else:
            return "±0"
