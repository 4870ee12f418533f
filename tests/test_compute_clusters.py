"""
Tests for the clustering adapter and request sequencing.
"""

import pytest

from compute_clusters import (
    PALETTE,
    ClusterCoordinator,
    ClusterRequest,
    StaleClusterResult,
    assign_clusters,
    eligible_variables,
    kmeans_collaborator,
    labels_by_key,
    league_color_map,
    merge_cluster_labels,
    ordinal_color_scale,
)
from normalize_team_profiles import EntityKey, normalize

VARIABLES = ["buildUpPlaySpeed", "defencePressure"]


class TestAdapter:

    def test_k_zero_short_circuits(self, league_records, clusterer):
        assert assign_clusters(league_records, VARIABLES, 0, clusterer) is None
        assert clusterer.calls == []

    def test_no_eligible_variable_short_circuits(self, league_records, clusterer):
        assert assign_clusters(league_records, ["missingColumn", "league_name"], 3, clusterer) is None
        assert clusterer.calls == []

    def test_eligible_variables(self, league_records):
        assert eligible_variables(league_records, ["team_name", "defencePressure", "nope", "defencePressure"]) == [
            "defencePressure"
        ]

    def test_merge_by_identity_not_position(self, league_records, clusterer):
        labeled = assign_clusters(league_records, VARIABLES, 3, clusterer)
        # scripted answer comes back reversed
        assert labeled[0]["team_name"] == league_records[-1].team

        merged = merge_cluster_labels(league_records, labeled)
        assert merged == len(league_records)
        for i, record in enumerate(league_records):
            assert record.cluster == (i % 3) + 1

    def test_merge_clears_previous_labels(self, two_teams):
        for r in two_teams:
            r.cluster = 9
        merge_cluster_labels(two_teams, {EntityKey("groupA", "E1"): 2})
        assert [r.cluster for r in two_teams] == [2, None]

    def test_allowed_keys(self, two_teams):
        labeled = {EntityKey("groupA", "E1"): 1, EntityKey("groupA", "E2"): 2}
        merge_cluster_labels(two_teams, labeled, allowed_keys={EntityKey("groupA", "E2")})
        assert [r.cluster for r in two_teams] == [None, 2]

    def test_labels_by_key_formats(self, two_teams):
        rows = [{"league_name": "groupA", "team_name": "E1", "cluster": "2"},
                {"league_name": "groupA", "team_name": "E2", "cluster": None}]
        assert labels_by_key(rows) == {EntityKey("groupA", "E1"): 2}
        assert labels_by_key(None) == {}


class TestKMeans:

    def test_separates_obvious_groups(self):
        raw = [{"league_name": "L", "team_name": f"T{i}", "buildUpPlaySpeed": v, "defencePressure": v}
               for i, v in enumerate([1, 1.1, 1.2, 10, 10.1, None])]
        records = normalize(raw).records
        labeled = kmeans_collaborator(records, VARIABLES, 2)
        labels = labels_by_key(labeled)

        assert set(labels.values()) == {1, 2}
        low = {labels[r.key] for r in records[:3]}
        high = {labels[records[3].key], labels[records[4].key]}
        assert len(low) == 1 and len(high) == 1
        assert low != high

    def test_k_capped_at_row_count(self, two_teams):
        labeled = kmeans_collaborator(two_teams, VARIABLES[:1], 5)
        assert {row["cluster"] for row in labeled} <= {1, 2}

    def test_empty_rows(self):
        assert kmeans_collaborator([], VARIABLES, 3) == []


class TestCoordinator:

    def test_only_latest_request_resolves(self, league_records, deferred_clusterer):
        coord = ClusterCoordinator(deferred_clusterer)
        first = coord.begin(league_records, VARIABLES, 3)
        assert coord.dispatch(first, league_records) is None
        second = coord.begin(league_records, VARIABLES, 3)

        with pytest.raises(StaleClusterResult) as exc:
            coord.resolve(first.sequence, deferred_clusterer.answer(league_records, 3), league_records)
        assert exc.value.sequence == first.sequence
        assert coord.discarded == 1
        assert all(r.cluster is None for r in league_records)

        coord.resolve(second.sequence, deferred_clusterer.answer(league_records, 3), league_records)
        assert all(r.cluster is not None for r in league_records)

    def test_invalidate_makes_pending_stale(self, league_records, deferred_clusterer):
        coord = ClusterCoordinator(deferred_clusterer)
        request = coord.begin(league_records, VARIABLES, 3)
        coord.invalidate()
        with pytest.raises(StaleClusterResult):
            coord.resolve(request.sequence, [], league_records)

    def test_dispatch_runs_adapter(self, league_records, clusterer):
        coord = ClusterCoordinator(clusterer)
        request = coord.begin(league_records, VARIABLES + ["missingColumn"], 3)
        assert request.variables == VARIABLES

        labeled = coord.dispatch(request, league_records)
        assert clusterer.calls[-1][1:] == (VARIABLES, 3)
        assert len(labeled) == len(league_records)

    def test_dispatch_short_circuits_like_adapter(self, league_records, clusterer):
        coord = ClusterCoordinator(clusterer)
        request = ClusterRequest(sequence=1, keys=frozenset(), variables=VARIABLES, k=0)
        assert coord.dispatch(request, league_records) is None
        assert clusterer.calls == []

    def test_begin_short_circuits(self, league_records, clusterer):
        coord = ClusterCoordinator(clusterer)
        assert coord.begin(league_records, VARIABLES, 0) is None
        assert coord.begin(league_records, [], 3) is None
        assert coord.pending is None

    def test_result_only_labels_requested_teams(self, league_records, deferred_clusterer):
        coord = ClusterCoordinator(deferred_clusterer)
        subset = league_records[:5]
        request = coord.begin(subset, VARIABLES, 2)
        coord.resolve(request.sequence, deferred_clusterer.answer(league_records, 2), league_records)
        assert sum(r.cluster is not None for r in league_records) == 5


class TestColors:

    def test_ordinal_scale_first_seen(self):
        color = ordinal_color_scale()
        assert color(3) == PALETTE[0]
        assert color(1) == PALETTE[1]
        assert color(3) == PALETTE[0]

    def test_league_colors_follow_selection_order(self):
        colors = league_color_map(["Spain", "England"])
        assert colors == {"Spain": PALETTE[0], "England": PALETTE[1]}
