"""
Tests for the weighted score.
"""

from compute_weighted_scores import (
    clamp_weight,
    compute_weighted_scores,
    default_weights,
    weighted_score,
)
from normalize_team_profiles import normalize

ACTIVE = ["buildUpPlaySpeed", "buildUpPlayPassing"]


class TestWeightedScore:

    def test_equal_weights_average(self, two_teams):
        compute_weighted_scores(two_teams, ACTIVE, {"buildUpPlaySpeed": 1, "buildUpPlayPassing": 1})
        assert [r.weighted_score for r in two_teams] == [3.0, 3.0]

    def test_unequal_weights(self, two_teams):
        compute_weighted_scores(two_teams, ACTIVE, {"buildUpPlaySpeed": 2, "buildUpPlayPassing": 1})
        # E1: (2*2 + 4) / 3, E2: (4*2 + 2) / 3
        assert two_teams[0].weighted_score == 2.67
        assert two_teams[1].weighted_score == 3.33

    def test_zero_weights_score_zero(self, league_records):
        weights = {a: 0.0 for a in default_weights()}
        compute_weighted_scores(league_records, ACTIVE, weights)
        assert all(r.weighted_score == 0.0 for r in league_records)

    def test_no_active_attributes(self, two_teams):
        compute_weighted_scores(two_teams, [], default_weights())
        assert [r.weighted_score for r in two_teams] == [0.0, 0.0]

    def test_idempotent(self, league_records):
        weights = default_weights()
        weights["buildUpPlaySpeed"] = 1.7
        compute_weighted_scores(league_records, ACTIVE, weights)
        first = [r.weighted_score for r in league_records]
        compute_weighted_scores(league_records, ACTIVE, weights)
        assert [r.weighted_score for r in league_records] == first

    def test_null_values_skipped(self):
        record = normalize([{
            "league_name": "L", "team_name": "A",
            "buildUpPlaySpeed": "60", "buildUpPlayPassing": "",
        }]).records[0]
        assert weighted_score(record, ACTIVE, default_weights()) == 60.0

    def test_ordinal_uses_rank(self):
        record = normalize([{
            "league_name": "L", "team_name": "A",
            "defenceDefenderLineClass": "Offside Trap", "defencePressure": "4",
        }]).records[0]
        score = weighted_score(record, ["defenceDefenderLineClass", "defencePressure"], default_weights())
        assert score == 3.0

    def test_duplicate_active_attribute_counts_once(self, two_teams):
        compute_weighted_scores(two_teams, ["buildUpPlaySpeed", "buildUpPlaySpeed", "buildUpPlayPassing"],
                                default_weights())
        assert two_teams[0].weighted_score == 3.0

    def test_clamp_weight(self):
        assert clamp_weight(5) == 2.0
        assert clamp_weight(-1) == 0.0
        assert clamp_weight("0.4") == 0.4
