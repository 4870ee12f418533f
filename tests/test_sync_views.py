"""
Tests for cross-view synchronization.
"""

import json

import pytest

from compute_clusters import PALETTE
from selection_state import SelectionStateManager
from sync_views import (
    EMPTY_LEAGUES_MESSAGE,
    EMPTY_WEIGHTS_MESSAGE,
    HEATMAP_VIEW,
    PARALLEL_VIEW,
    SINGLE_LEAGUE_ALPHA,
    TABLE_VIEW,
    Brushable,
    Highlightable,
    Renderable,
    ViewSynchronizer,
)

ENGLAND = "England Premier League"
SPAIN = "Spain LIGA BBVA"


class RecordingView:
    """Implements every capability and records the calls."""

    def __init__(self):
        self.calls = []

    def render(self, payload):
        self.calls.append(("render", payload))

    def highlight(self, keys):
        self.calls.append(("highlight", list(keys)))

    def unhighlight(self):
        self.calls.append(("unhighlight", None))

    def apply_brushes(self, brush_ranges):
        self.calls.append(("brush", brush_ranges))

    def names(self):
        return [c[0] for c in self.calls]


class RenderOnlyView:

    def __init__(self):
        self.payloads = []

    def render(self, payload):
        self.payloads.append(payload)


@pytest.fixture
def manager(league_records, clusterer):
    return SelectionStateManager(league_records, clusterer=clusterer)


@pytest.fixture
def sync(manager):
    return ViewSynchronizer(manager)


class TestCapabilities:

    def test_protocol_checks(self):
        assert isinstance(RecordingView(), Highlightable)
        assert isinstance(RecordingView(), Brushable)
        assert isinstance(RenderOnlyView(), Renderable)
        assert not isinstance(RenderOnlyView(), Highlightable)

    def test_attach_renders_immediately(self, sync):
        view = RenderOnlyView()
        sync.attach(HEATMAP_VIEW, view)
        assert len(view.payloads) == 1
        assert view.payloads[0]["x_ids"][0] == "buildUpPlaySpeed"

    def test_render_only_view_gets_no_highlight(self, sync, manager):
        view = RenderOnlyView()
        sync.attach(PARALLEL_VIEW, view)
        manager.set_highlighted({manager.records[0].key})
        assert len(view.payloads) == 1

    def test_close_stops_updates(self, sync, manager):
        view = RenderOnlyView()
        sync.attach(TABLE_VIEW, view)
        sync.close()
        manager.set_search_text("Spain")
        assert len(view.payloads) == 1


class TestHeatmapInteraction:

    def test_cell_click_toggles_both(self, sync, manager):
        sync.on_heatmap_click("Speed", "Pressure")
        assert manager.state.active_attributes == ["buildUpPlaySpeed", "defencePressure"]
        sync.on_heatmap_click("Speed", "Pressure")
        assert manager.state.active_attributes == []

    def test_diagonal_toggles_once(self, sync, manager):
        plans = sync.on_heatmap_click("Speed", "Speed")
        assert len(plans) == 1
        assert manager.state.active_attributes == ["buildUpPlaySpeed"]

    def test_label_click(self, sync, manager):
        sync.on_heatmap_label_click("Team Width")
        assert manager.state.active_attributes == ["defenceTeamWidth"]
        assert sync.on_heatmap_label_click("Goals") is None

    def test_selected_labels_highlighted(self, sync):
        sync.on_heatmap_label_click("Aggression")
        assert sync.heatmap_slice()["highlighted_labels"] == ["Aggression"]

    def test_column_checkbox(self, sync, manager):
        sync.on_column_checkbox("defencePressure", True)
        sync.on_column_checkbox("defencePressure", True)
        assert manager.state.active_attributes == ["defencePressure"]
        sync.on_column_checkbox("defencePressure", False)
        assert manager.state.active_attributes == []
        assert sync.column_visibility()["checked"]["defencePressure"] is False


class TestBrushAndHighlight:

    def test_axis_brush_by_title(self, sync, manager):
        sync.on_heatmap_label_click("Speed")
        sync.on_axis_brush("Speed", (30, 40))
        assert manager.state.brush_ranges == {"buildUpPlaySpeed": (30.0, 40.0)}
        sync.on_axis_brush("buildUpPlaySpeed", None)
        assert manager.state.brush_ranges == {}

    def test_brush_filters_table(self, sync):
        sync.on_heatmap_label_click("Speed")
        sync.on_axis_brush("Speed", (30, 35))
        table = sync.table_slice()
        # England speeds 30, 33; Spain 31, 34
        assert table["filtered_count"] == 4

    def test_row_checkbox_pushes_highlight(self, sync, manager):
        view = RecordingView()
        sync.attach(PARALLEL_VIEW, view)
        view.calls.clear()

        key = manager.records[3].key
        sync.on_row_checkbox(key, True)
        assert view.calls[-1] == ("highlight", [key])
        sync.on_row_checkbox(key, False)
        assert view.calls[-1] == ("unhighlight", None)

    def test_reconcile_after_render_uses_latest_state(self, sync, manager):
        view = RecordingView()
        sync.attach(PARALLEL_VIEW, view)
        keys = [r.key for r in manager.records[:3]]
        for key in keys:
            sync.on_row_checkbox(key, True)
        sync.on_row_checkbox(keys[0], False)

        view.calls.clear()
        sync.on_view_rendered(PARALLEL_VIEW)
        assert view.calls == [("brush", {}), ("highlight", sorted(keys[1:]))]

    def test_hover_is_transient(self, sync, manager):
        view = RecordingView()
        sync.attach(PARALLEL_VIEW, view)
        key = manager.records[5].key

        sync.on_row_hover(key)
        assert view.calls[-1] == ("highlight", [key])
        assert manager.state.highlighted == set()

        sync.on_row_leave()
        assert view.calls[-1] == ("unhighlight", None)

    def test_select_all_only_filtered_rows(self, sync, manager):
        sync.on_search("Spain")
        sync.on_select_all_rows(True)
        assert {k.league for k in manager.state.highlighted} == {SPAIN}
        assert len(manager.state.highlighted) == 12
        assert sync.table_slice()["select_all_checked"]

        sync.on_select_all_rows(False)
        assert manager.state.highlighted == set()

    def test_parallel_payload_dims_others(self, sync, manager):
        manager.set_highlighted({manager.records[0].key})
        payload = sync.parallel_payload()
        assert payload["dim_others"]
        assert payload["highlighted"] == [manager.records[0].key.as_dict()]


class TestParallelPayload:

    def test_multi_league(self, sync, manager):
        sync.on_heatmap_click("Speed", "Positioning")
        payload = sync.parallel_payload()
        assert payload["dimensions"] == ["league_name", "team_name", "buildUpPlaySpeed",
                                         "buildUpPlayPositioningClass"]
        assert payload["hidden_axes"] == ["team_name"]
        assert payload["alpha"] == manager.state.alpha
        assert payload["ordinal_ticks"] == {"buildUpPlayPositioningClass": {1: "Organised", 2: "Free Form"}}
        assert len(payload["rows"]) == 24

    def test_single_league(self, sync, manager):
        manager.select_only_group(SPAIN)
        payload = sync.parallel_payload()
        assert payload["dimensions"] == ["team_name"]
        assert payload["hidden_axes"] == ["league_name"]
        assert payload["alpha"] == SINGLE_LEAGUE_ALPHA
        assert payload["empty_attributes"]

    def test_league_colors_follow_selection_order(self, sync, manager):
        manager.set_active_groups([SPAIN, ENGLAND])
        payload = sync.parallel_payload()
        by_league = {row["league_name"]: color for row, color in zip(payload["rows"], payload["colors"])}
        assert by_league == {SPAIN: PALETTE[0], ENGLAND: PALETTE[1]}
        assert payload["color_by"] == "league_name"

    def test_cluster_colors_and_axes(self, sync, manager):
        sync.on_heatmap_click("Speed", "Pressure")
        manager.set_weight("buildUpPlaySpeed", 2)
        manager.apply_weights()
        manager.set_cluster_count(3)
        payload = sync.parallel_payload()
        assert payload["dimensions"][-2:] == ["weightedScore", "cluster"]
        assert payload["color_by"] == "cluster"
        assert payload["bundle_dimension"] == "cluster"
        assert len(set(payload["colors"])) == 3

    def test_rebuilt_each_time(self, sync, manager):
        sync.on_heatmap_label_click("Speed")
        first = sync.parallel_payload()
        sync.on_heatmap_label_click("Speed")
        second = sync.parallel_payload()
        assert "buildUpPlaySpeed" in first["dimensions"]
        assert "buildUpPlaySpeed" not in second["dimensions"]
        assert "buildUpPlaySpeed" not in second["rows"][0]


class TestPanels:

    def test_weights_panel_message_when_empty(self, sync):
        panel = sync.weights_panel()
        assert panel == {"message": EMPTY_WEIGHTS_MESSAGE, "groups": []}

    def test_weights_panel_grouped(self, sync, manager):
        sync.on_heatmap_click("Pressure", "Speed")
        manager.set_weight("defencePressure", 0.3)
        panel = sync.weights_panel()
        assert [g["group"] for g in panel["groups"]] == ["Build Up", "Defence"]
        slider = panel["groups"][1]["sliders"][0]
        assert (slider["id"], slider["value"], slider["max"]) == ("defencePressure", 0.3, 2.0)

    def test_table_slice(self, sync, manager):
        sync.on_heatmap_label_click("Defender Line")
        sync.on_header_click("team_name")
        table = sync.table_slice()
        assert table["columns"] == ["league_name", "team_name", "defenceDefenderLineClass"]
        assert table["header_groups"] == [{"type": "Team", "span": 2}, {"type": "Defence", "span": 1}]
        assert table["page_info"] == "Page 1 of 3"
        assert table["rows"][0]["cells"][2] in ("Cover", "Offside Trap")
        names = [row["key"]["team_name"] for row in table["rows"]]
        assert names == sorted(names)

        sync.on_next_page()
        assert sync.table_slice()["page"] == 2
        sync.on_prev_page()
        assert sync.table_slice()["page"] == 1

    def test_empty_state(self, sync, manager):
        manager.clear_groups()
        assert sync.heatmap_slice() == {"empty": True, "message": EMPTY_LEAGUES_MESSAGE}
        assert sync.table_slice()["empty"]
        assert sync.parallel_payload()["empty"]
        assert sync.controls()["leagues"]["label"] == "No Leagues"

    def test_views_refreshed_by_plan(self, sync, manager):
        heatmap, table = RenderOnlyView(), RenderOnlyView()
        sync.attach(HEATMAP_VIEW, heatmap)
        sync.attach(TABLE_VIEW, table)

        sync.on_search("Eng")
        assert len(heatmap.payloads) == 1
        assert len(table.payloads) == 2
        assert table.payloads[-1]["filtered_count"] == 12

        sync.on_heatmap_label_click("Speed")
        assert len(heatmap.payloads) == 2

    def test_snapshot_is_json(self, sync, manager):
        sync.on_heatmap_click("Speed", "Positioning")
        manager.apply_weights()
        manager.set_cluster_count(4)
        text = json.dumps(sync.snapshot())
        assert "weightedScore" in text
