"""
================================================================================
SYNC VIEWS
================================================================================

PURPOSE:
    Cross-view synchronization. Translates what happens in one view into
    SelectionStateManager operations, and hands every view the slice of state
    it needs after each change.

VIEWS:
    parallel       multi-axis line plot (one line per team)
    heatmap        attribute correlation matrix
    table          paged team table
    weights_panel  weight sliders
    controls       league dropdown + column-visibility dropdown

INTERACTIONS (view -> state):
    heatmap cell click (x, y)    toggle x and y attributes (diagonal: once)
    heatmap label click          toggle that attribute
    column checkbox              add / remove attribute
    axis brush                   set / clear brush range on that attribute
    row checkbox                 add / remove team from highlight set
    select-all checkbox          every filtered row in / out of highlight set
    row hover                    transient highlight, state untouched
    header click                 sort (repeat click flips direction)
    search box, pager            search text, page

CAPABILITIES:
    View adapters opt in by implementing Renderable, Highlightable and/or
    Brushable. Nothing is called on an adapter that does not implement it.

RECONCILIATION:
    Renderers may redraw asynchronously. When a view reports it has finished
    (on_view_rendered), the CURRENT brush and highlight state is re-applied.
    Level-triggered: it does not matter how many changes happened meanwhile.

REBUILD POLICY:
    The parallel payload is rebuilt from the canonical records on every
    structural change (groups, attributes, scores, clusters). No patching.

================================================================================
"""

from typing import Dict, List, Optional, Protocol, runtime_checkable

from compute_clusters import PALETTE, league_color_map, ordinal_color_scale
from compute_correlations import heatmap_payload
from compute_weighted_scores import WEIGHT_RANGE, WEIGHT_STEP
from normalize_team_profiles import EntityKey
from query_table import (
    column_header_groups,
    cell_text,
    filter_rows,
    query_rows,
    table_columns,
)
from selection_state import ATTRIBUTES, GROUPS
from team_attributes import (
    ATTRIBUTE_GROUPS,
    CLUSTER_FIELD,
    LEAGUE_FIELD,
    SCORE_FIELD,
    TEAM_FIELD,
    attribute_for_title,
    attribute_title,
    attributes_in_group,
    is_ordinal,
    ordinal_tick_labels,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

PARALLEL_VIEW = "parallel"
HEATMAP_VIEW = "heatmap"
TABLE_VIEW = "table"
WEIGHTS_VIEW = "weights_panel"
CONTROLS_VIEW = "controls"

SINGLE_LEAGUE_ALPHA = 0.5
EMPTY_LEAGUES_MESSAGE = "No leagues selected."
EMPTY_WEIGHTS_MESSAGE = "Select attributes in the heatmap to adjust their weights."


# =============================================================================
# CAPABILITIES
# =============================================================================

@runtime_checkable
class Renderable(Protocol):
    def render(self, payload: dict) -> None: ...


@runtime_checkable
class Highlightable(Protocol):
    def highlight(self, keys: List[EntityKey]) -> None: ...

    def unhighlight(self) -> None: ...


@runtime_checkable
class Brushable(Protocol):
    def apply_brushes(self, brush_ranges: dict) -> None: ...


# =============================================================================
# SYNCHRONIZER
# =============================================================================

class ViewSynchronizer:
    """
    Glue between the view adapters and a SelectionStateManager.
    """

    def __init__(self, manager):
        self.manager = manager
        self.views: Dict[str, object] = {}
        self.hovered: Optional[EntityKey] = None
        self._unsubscribe = manager.subscribe(self._on_change)

    def attach(self, name: str, adapter) -> None:
        """Register a view adapter and bring it up to date."""
        self.views[name] = adapter
        self.refresh(name)

    def detach(self, name: str) -> None:
        self.views.pop(name, None)

    def close(self) -> None:
        self._unsubscribe()
        self.views = {}

    # -------------------------------------------------------------------------
    # State -> views
    # -------------------------------------------------------------------------

    def _on_change(self, event) -> None:
        plan = event.plan
        targets = []
        if plan.parallel or plan.display:
            targets.append(PARALLEL_VIEW)
        if plan.heatmap:
            targets.append(HEATMAP_VIEW)
        if plan.table:
            targets.append(TABLE_VIEW)
        if plan.weights_panel:
            targets.append(WEIGHTS_VIEW)
        if event.kind in (GROUPS, ATTRIBUTES):
            targets.append(CONTROLS_VIEW)

        for name in targets:
            self.refresh(name)

        if (plan.highlight or plan.brush) and PARALLEL_VIEW not in targets:
            self.reconcile(PARALLEL_VIEW)

    def slice_for(self, name: str) -> dict:
        if name == PARALLEL_VIEW:
            return self.parallel_payload()
        if name == HEATMAP_VIEW:
            return self.heatmap_slice()
        if name == TABLE_VIEW:
            return self.table_slice()
        if name == WEIGHTS_VIEW:
            return self.weights_panel()
        if name == CONTROLS_VIEW:
            return self.controls()
        raise KeyError(f"Unknown view: '{name}'")

    def refresh(self, name: str) -> None:
        """Hand a view its current slice, then re-apply brush / highlight."""
        adapter = self.views.get(name)
        if adapter is None:
            return
        if isinstance(adapter, Renderable):
            adapter.render(self.slice_for(name))
        self.reconcile(name)

    def reconcile(self, name: str) -> None:
        """Push the current brush and highlight state into a view."""
        adapter = self.views.get(name)
        if adapter is None:
            return
        if isinstance(adapter, Brushable):
            adapter.apply_brushes(dict(self.manager.state.brush_ranges))
        if isinstance(adapter, Highlightable):
            keys = self.highlight_keys()
            if keys:
                adapter.highlight(keys)
            else:
                adapter.unhighlight()

    def on_view_rendered(self, name: str) -> None:
        """A renderer finished an (async) redraw."""
        self.reconcile(name)

    def highlight_keys(self) -> List[EntityKey]:
        keys = set(self.manager.state.highlighted)
        if self.hovered is not None:
            keys.add(self.hovered)
        return sorted(keys)

    # -------------------------------------------------------------------------
    # Views -> state
    # -------------------------------------------------------------------------

    def on_heatmap_click(self, x_label, y_label) -> list:
        """Cell click toggles both attributes; the diagonal toggles one."""
        attr_x = attribute_for_title(x_label)
        attr_y = attribute_for_title(y_label)
        plans = []
        for attr in dict.fromkeys(a for a in (attr_x, attr_y) if a is not None):
            plans.append(self.manager.toggle_attribute(attr))
        return plans

    def on_heatmap_label_click(self, label):
        attr = attribute_for_title(label)
        if attr is None:
            return None
        return self.manager.toggle_attribute(attr)

    def on_column_checkbox(self, attr_id, checked: bool):
        active = self.manager.state.active_attributes
        if checked and attr_id not in active:
            return self.manager.toggle_attribute(attr_id)
        if not checked and attr_id in active:
            return self.manager.toggle_attribute(attr_id)
        return None

    def on_axis_brush(self, axis, value_range):
        """
        Brush event from the parallel view.

        Args:
            axis: Axis title (or raw attribute id)
            value_range: (low, high) in data units, or None when cleared
        """
        attr = attribute_for_title(axis)
        if attr is None:
            return None
        return self.manager.set_brush(attr, value_range)

    def on_row_checkbox(self, key: EntityKey, checked: bool):
        return self.manager.toggle_highlighted(key, checked)

    def on_select_all_rows(self, checked: bool):
        """Header checkbox: applies to every filtered row, not just this page."""
        s = self.manager.state
        filtered = {r.key for r in filter_rows(self.manager.visible_records(), s.search_text, s.brush_ranges)}
        if checked:
            keys = set(s.highlighted) | filtered
        else:
            keys = set(s.highlighted) - filtered
        return self.manager.set_highlighted(keys)

    def on_row_hover(self, key: Optional[EntityKey]) -> None:
        """Hover adds a transient highlight on top of the selected rows."""
        self.hovered = key
        self.reconcile(PARALLEL_VIEW)

    def on_row_leave(self) -> None:
        self.on_row_hover(None)

    def on_header_click(self, column):
        return self.manager.set_sort(column)

    def on_search(self, text):
        return self.manager.set_search_text(text)

    def on_next_page(self):
        return self.manager.next_page()

    def on_prev_page(self):
        return self.manager.prev_page()

    # -------------------------------------------------------------------------
    # Slices
    # -------------------------------------------------------------------------

    def color_function(self):
        """
        Line color: by cluster when clustering is on, else by league in
        selection order.
        """
        s = self.manager.state
        if s.cluster_count > 0 and self.manager.has_clusters():
            scale = ordinal_color_scale(PALETTE)
            for label in sorted({r.cluster for r in self.manager.visible_records() if r.cluster is not None}):
                scale(label)
            return lambda row: scale(row.get(CLUSTER_FIELD))

        colors = league_color_map(s.active_groups, PALETTE)
        return lambda row: colors.get(row.get(LEAGUE_FIELD), PALETTE[0])

    def parallel_payload(self) -> dict:
        """
        Rows and axis setup for the multi-axis plot, rebuilt from the records.
        """
        m = self.manager
        s = m.state
        if m.is_empty:
            return {"empty": True, "rows": [], "dimensions": [], "colors": []}

        visible = m.visible_records()
        single_league = len({r.league for r in visible}) == 1
        base = [TEAM_FIELD] if single_league else [LEAGUE_FIELD, TEAM_FIELD]

        dims = base + [a for a in s.active_attributes if a not in base]
        has_score = any(r.weighted_score is not None for r in visible)
        has_cluster = any(r.cluster is not None for r in visible)

        rows = []
        for record in visible:
            row = {LEAGUE_FIELD: record.league, TEAM_FIELD: record.team}
            for attr in s.active_attributes:
                row[attr] = record.values.get(attr)
            if record.weighted_score is not None:
                row[SCORE_FIELD] = record.weighted_score
            if record.cluster is not None:
                row[CLUSTER_FIELD] = record.cluster
            rows.append(row)

        if has_score:
            dims.append(SCORE_FIELD)
        if has_cluster:
            dims.append(CLUSTER_FIELD)

        color = self.color_function()
        clustering = s.cluster_count > 0

        return {
            "empty": False,
            "empty_attributes": not s.active_attributes,
            "rows": rows,
            "dimensions": dims,
            "axis_titles": {d: attribute_title(d) for d in dims},
            "ordinal_ticks": {d: ordinal_tick_labels(d) for d in dims if is_ordinal(d)},
            "hidden_axes": [LEAGUE_FIELD] if single_league else [TEAM_FIELD],
            "alpha": SINGLE_LEAGUE_ALPHA if single_league else s.alpha,
            "smoothness": s.smoothness if clustering else 0.0,
            "bundling": s.bundling if clustering else 0.0,
            "bundle_dimension": CLUSTER_FIELD if clustering else None,
            "color_by": CLUSTER_FIELD if clustering and has_cluster else LEAGUE_FIELD,
            "colors": [color(row) for row in rows],
            "highlighted": [k.as_dict() for k in self.highlight_keys()],
            "dim_others": bool(self.highlight_keys()),
            "brushes": {a: list(r) for a, r in s.brush_ranges.items()},
        }

    def heatmap_slice(self) -> dict:
        m = self.manager
        matrix = m.heatmap_matrix()
        if matrix is None:
            return {"empty": True, "message": EMPTY_LEAGUES_MESSAGE}
        payload = heatmap_payload(matrix, m.state.active_attributes)
        payload["empty"] = False
        return payload

    def table_slice(self) -> dict:
        m = self.manager
        s = m.state
        if m.is_empty:
            return {"empty": True, "columns": [], "header_groups": [], "rows": [],
                    "page": 1, "total_pages": 1, "page_info": "Page 1 of 1"}

        visible = m.visible_records()
        page = query_rows(visible, s.search_text, s.brush_ranges, s.sort_column,
                          s.sort_direction, s.page)
        columns = table_columns(visible, s.active_attributes)
        filtered = filter_rows(visible, s.search_text, s.brush_ranges)

        return {
            "empty": False,
            "columns": columns,
            "titles": [attribute_title(c) for c in columns],
            "header_groups": column_header_groups(columns),
            "sort_column": s.sort_column,
            "sort_direction": s.sort_direction,
            "rows": [
                {
                    "key": r.key.as_dict(),
                    "cells": [cell_text(r, c) for c in columns],
                    "selected": r.key in s.highlighted,
                }
                for r in page.rows
            ],
            "select_all_checked": bool(filtered) and all(r.key in s.highlighted for r in filtered),
            "page": page.page,
            "total_pages": page.total_pages,
            "filtered_count": page.filtered_count,
            "page_info": page.page_info,
            "has_prev": page.has_prev,
            "has_next": page.has_next,
            "search": s.search_text,
        }

    def weights_panel(self) -> dict:
        s = self.manager.state
        if not s.active_attributes:
            return {"message": EMPTY_WEIGHTS_MESSAGE, "groups": []}

        low, high = WEIGHT_RANGE
        groups = []
        for group_name in ATTRIBUTE_GROUPS:
            attrs = attributes_in_group(group_name, s.active_attributes)
            if not attrs:
                continue
            groups.append({
                "group": group_name,
                "sliders": [
                    {"id": a, "title": attribute_title(a), "value": s.weights[a],
                     "min": low, "max": high, "step": WEIGHT_STEP}
                    for a in attrs
                ],
            })
        return {"message": None, "groups": groups}

    def controls(self) -> dict:
        m = self.manager
        s = m.state
        return {
            "leagues": {
                "label": m.league_dropdown_label(),
                "checked": {g: g in s.active_groups for g in m.groups},
                "announcement": m.announcement,
            },
            "columns": self.column_visibility(),
        }

    def column_visibility(self) -> dict:
        m = self.manager
        active = m.state.active_attributes
        return {
            "label": m.column_dropdown_label(),
            "checked": {a: a in active for a in m.heatmap_attributes()},
            "groups": [
                {"group": g, "columns": [a for a in ATTRIBUTE_GROUPS[g] if a in m.attributes]}
                for g in ATTRIBUTE_GROUPS
            ],
        }

    def snapshot(self) -> dict:
        """Every slice at once, JSON friendly."""
        return {
            PARALLEL_VIEW: self.parallel_payload(),
            HEATMAP_VIEW: self.heatmap_slice(),
            TABLE_VIEW: self.table_slice(),
            WEIGHTS_VIEW: self.weights_panel(),
            CONTROLS_VIEW: self.controls(),
        }
