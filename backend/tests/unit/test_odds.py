"""
Unit Tests: Odds

Test cases:
- American odds parsing and rejection of malformed strings
- Implied probability
- Fixed-odds payouts, rounded down to whole points
- Pari-mutuel payouts
- Pool-implied display odds
"""

import pytest

from sling.exceptions import InvalidOddsError, InvalidStakeError
from sling.odds import (
    format_american_odds,
    implied_probability,
    parimutuel_payout,
    parse_american_odds,
    payout,
    pool_implied_probabilities,
)


def test_parse_signed_and_unsigned_odds() -> None:
    assert parse_american_odds("-110") == -110
    assert parse_american_odds("+150") == 150
    assert parse_american_odds("200") == 200
    assert parse_american_odds(" -120 ") == -120


@pytest.mark.parametrize("odds", ["", "+", "-0", "0", "abc", "1.5", "+-100", "１００"])
def test_parse_rejects_malformed_odds(odds: str) -> None:
    with pytest.raises(InvalidOddsError):
        parse_american_odds(odds)


def test_parse_rejects_non_string() -> None:
    with pytest.raises(InvalidOddsError):
        parse_american_odds(-110)


def test_implied_probability() -> None:
    assert implied_probability("-110") == pytest.approx(110 / 210)
    assert implied_probability("+150") == pytest.approx(0.4)
    assert implied_probability("+100") == pytest.approx(0.5)
    assert 0 < implied_probability("-100000") < 1


def test_payout_reference_values() -> None:
    assert payout(100, "-110") == 190
    assert payout(100, "+150") == 250
    assert payout(50, "-110") == 95
    assert payout(40, "+200") == 120
    assert payout(100, "+100") == 200


def test_payout_rounds_down() -> None:
    # 10 * 100 / 110 = 9.09...
    assert payout(10, "-110") == 19
    assert payout(1, "+150") == 2


def test_payout_zero_stake_and_invalid_stake() -> None:
    assert payout(0, "-110") == 0
    with pytest.raises(InvalidStakeError):
        payout(-5, "+150")
    with pytest.raises(InvalidStakeError):
        payout(True, "+150")
    with pytest.raises(InvalidOddsError):
        payout(100, "even")


def test_payout_is_never_below_stake() -> None:
    for stake in (1, 7, 33, 100, 999):
        for odds in ("-1000", "-110", "+100", "+5000"):
            assert payout(stake, odds) >= stake


def test_parimutuel_payout() -> None:
    assert parimutuel_payout(50, 100, 60) == 80
    assert parimutuel_payout(100, 100, 0) == 100
    assert parimutuel_payout(0, 100, 60) == 0
    with pytest.raises(InvalidStakeError):
        parimutuel_payout(200, 100, 60)


def test_format_american_odds() -> None:
    assert format_american_odds(0.5) == "-100"
    assert format_american_odds(0.4) == "+150"
    assert format_american_odds(0.75) == "-300"
    assert format_american_odds(0.0) == "+1000"
    assert format_american_odds(1.0) == "-1000"
    assert format_american_odds(0.01) == "+1000"


def test_pool_probabilities_empty_pool_falls_back_to_odds() -> None:
    probabilities = pool_implied_probabilities(
        ["Yes", "No"], {"Yes": 0, "No": 0}, {"Yes": "+100", "No": "+150"}
    )
    assert probabilities == {"Yes": pytest.approx(0.5), "No": pytest.approx(0.4)}

    equal = pool_implied_probabilities(["A", "B", "C", "D"], {})
    assert equal == {option: pytest.approx(0.25) for option in "ABCD"}


def test_pool_probabilities_are_smoothed() -> None:
    # Buffer is max(25, 5% of 100) = 25, split 12.5 per option
    probabilities = pool_implied_probabilities(["Yes", "No"], {"Yes": 100, "No": 0})
    assert probabilities["Yes"] == pytest.approx(112.5 / 125)
    assert probabilities["No"] == pytest.approx(12.5 / 125)
    assert sum(probabilities.values()) == pytest.approx(1.0)

    # Large pool uses the 5% buffer
    large = pool_implied_probabilities(["Yes", "No"], {"Yes": 1000, "No": 1000})
    assert large["Yes"] == pytest.approx(0.5)
