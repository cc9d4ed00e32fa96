import pytest

from club.utils.elo import EloCalculator


def test_equal_ratings_expected_score_is_half():
    assert EloCalculator.calculate_expected_score(1200, 1200) == pytest.approx(0.5)


def test_expected_scores_are_complementary():
    a = EloCalculator.calculate_expected_score(1400, 1100)
    b = EloCalculator.calculate_expected_score(1100, 1400)
    assert a + b == pytest.approx(1.0)
    assert a > 0.5


@pytest.mark.parametrize("matches, expected", [
    (0, 40), (29, 40), (30, 20), (99, 20), (100, 10), (500, 10),
])
def test_k_factor_thresholds(matches, expected):
    assert EloCalculator.get_k_factor(matches) == expected


def test_equal_ratings_three_one_win():
    assert EloCalculator.compute_elo_delta(1200, 1200, 3, 1, 40) == (20, -20)


def test_loser_side_can_be_player_a():
    assert EloCalculator.compute_elo_delta(1200, 1200, 0, 2, 40) == (-20, 20)


def test_deltas_are_rounded_independently():
    delta_a, delta_b = EloCalculator.compute_elo_delta(1220, 1200, 3, 0, 40)
    # 40 * 0.4712... = 18.85 on both sides
    assert (delta_a, delta_b) == (19, -19)


def test_each_side_uses_its_own_k_factor():
    delta_a, delta_b = EloCalculator.compute_match_deltas(1200, 1200, 2, 0, 40, 10)
    assert delta_a == 20
    assert delta_b == -5


def test_delta_matches_formula_within_rounding():
    for rating_a, rating_b in ((1000, 1500), (1500, 1000), (1337, 1338), (0, 2400)):
        expected_a = EloCalculator.calculate_expected_score(rating_a, rating_b)
        delta_a, _ = EloCalculator.compute_elo_delta(rating_a, rating_b, 1, 0, 40)
        assert abs(delta_a + expected_a * 40 - 40) <= 0.5


def test_round_half_away_from_zero():
    assert EloCalculator.round_delta(2.5) == 3
    assert EloCalculator.round_delta(-2.5) == -3
    assert EloCalculator.round_delta(2.49) == 2
    assert EloCalculator.round_delta(0.0) == 0


def test_ratings_are_clamped_at_zero():
    assert EloCalculator.apply_delta(10, -25) == 0
    assert EloCalculator.apply_delta(10, 5) == 15


def test_format_elo_change():
    assert EloCalculator.format_elo_change(12) == "+12"
    assert EloCalculator.format_elo_change(-7) == "-7"
    assert EloCalculator.format_elo_change(0) == "±0"


def test_win_probability_is_percentage():
    assert EloCalculator.calculate_win_probability(1200, 1200) == pytest.approx(50.0)
