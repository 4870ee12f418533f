"""
================================================================================
SELECTION STATE
================================================================================

PURPOSE:
    Single source of truth for what the user has selected, and the only place
    that mutates it. Every operation:

        1. updates SelectionState,
        2. restores its invariants (see below),
        3. runs the recomputation it invalidated (scores, correlation,
           clustering) synchronously,
        4. publishes a ChangeEvent carrying a RecomputePlan,
        5. returns that plan.

    Views never touch the state directly. They subscribe and pull the slice
    they need (see sync_views.py).

STATE:
    active_groups       leagues shown, in selection order (drives colors)
    active_attributes   attributes shown, in selection order, no duplicates
    weights             pending slider weights, [0, 2], default 1
    cluster_count       k, 0 = clustering off
    alpha / smoothness / bundling   line display, [0, 1]
    brush_ranges        attribute -> (low, high)
    highlighted         EntityKeys emphasized across views
    search_text, sort_column, sort_direction, page   table state

INVARIANTS:
    - active_attributes only holds attributes present in the records
    - no groups -> no brushes, no highlights, no cluster labels, and nothing
      downstream is computed (empty state)
    - a brush only exists for an attribute that has an axis
    - highlights only hold visible teams
    - cluster labels only exist for the last clustered subset while k > 0

================================================================================
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from compute_clusters import (
    MAX_CLUSTERS,
    ClusterCoordinator,
    StaleClusterResult,
    clear_cluster_labels,
    kmeans_collaborator,
)
from compute_correlations import CorrelationMatrix, compute_correlation_matrix
from compute_weighted_scores import clamp_weight, compute_weighted_scores, default_weights
from normalize_team_profiles import available_attributes, list_groups
from query_table import ASCENDING, clamp_page, filter_rows
from team_attributes import (
    CLUSTER_FIELD,
    HEATMAP_ATTRIBUTES,
    LEAGUE_FIELD,
    SCORE_FIELD,
    TEAM_FIELD,
    attribute_title,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_ALPHA = 0.1
DEFAULT_SMOOTHNESS = 0.0
DEFAULT_BUNDLING = 0.0
DISPLAY_RANGE = (0.0, 1.0)

# Event kinds
GROUPS = "groups"
ATTRIBUTES = "attributes"
WEIGHTS = "weights"
SCORES = "scores"
CLUSTERS = "clusters"
CLUSTER_RESULT = "cluster_result"
BRUSH = "brush"
HIGHLIGHT = "highlight"
SEARCH = "search"
SORT = "sort"
PAGE = "page"
DISPLAY = "display"


# =============================================================================
# STATE, PLANS, EVENTS
# =============================================================================

@dataclass
class SelectionState:
    active_groups: List[str] = field(default_factory=list)
    active_attributes: List[str] = field(default_factory=list)
    weights: Dict[str, float] = field(default_factory=default_weights)
    cluster_count: int = 0
    alpha: float = DEFAULT_ALPHA
    smoothness: float = DEFAULT_SMOOTHNESS
    bundling: float = DEFAULT_BUNDLING
    brush_ranges: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    highlighted: Set = field(default_factory=set)
    search_text: str = ""
    sort_column: Optional[str] = None
    sort_direction: int = ASCENDING
    page: int = 1


@dataclass
class RecomputePlan:
    """What an operation invalidated. Views refresh the parts flagged here."""

    kind: str
    changed: bool = True
    empty_state: bool = False
    empty_attributes: bool = False
    scores: bool = False
    correlation: bool = False
    clusters: bool = False
    parallel: bool = False
    heatmap: bool = False
    table: bool = False
    weights_panel: bool = False
    highlight: bool = False
    brush: bool = False
    display: bool = False

    def refreshes(self) -> List[str]:
        """Names of the view slices to pull again."""
        names = []
        for name in ("parallel", "heatmap", "table", "weights_panel", "highlight", "brush", "display"):
            if getattr(self, name):
                names.append(name)
        return names


@dataclass
class ChangeEvent:
    kind: str
    plan: RecomputePlan
    state: SelectionState


def clamp_unit(value) -> float:
    low, high = DISPLAY_RANGE
    return max(low, min(high, float(value)))


def dedupe(items) -> list:
    return list(dict.fromkeys(items))


# =============================================================================
# MANAGER
# =============================================================================

class SelectionStateManager:
    """
    Owns the SelectionState and the canonical TeamRecords.

    Args:
        records: Normalized TeamRecords (owned from here on)
        clusterer: Clustering collaborator, see compute_clusters.py
        state: Optional pre-built state (sanitized on the way in)
    """

    def __init__(self, records, clusterer=kmeans_collaborator, state: Optional[SelectionState] = None):
        self.records = list(records)
        self.groups = list_groups(self.records)
        self.attributes = available_attributes(self.records)
        self.coordinator = ClusterCoordinator(clusterer)
        self.announcement = ""

        self._subscribers: List[Tuple[Callable, Optional[Set[str]]]] = []
        self._heatmap_matrix: Optional[CorrelationMatrix] = None
        self._last_removed: Optional[Tuple[str, int]] = None

        if state is None:
            state = SelectionState(active_groups=list(self.groups))
        self.state = state
        self._sanitize()
        self._refresh_correlation()
        self._rebuild_clusters()

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, callback, kinds=None):
        """
        Register `callback(event)` for change events.

        Args:
            callback: Called with a ChangeEvent after every operation
            kinds: Optional iterable of event kinds to filter on

        Returns:
            A function that removes the subscription
        """
        entry = (callback, set(kinds) if kinds is not None else None)
        self._subscribers.append(entry)

        def unsubscribe():
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    def _publish(self, plan: RecomputePlan) -> RecomputePlan:
        if plan.changed:
            event = ChangeEvent(kind=plan.kind, plan=plan, state=self.state)
            for callback, kinds in list(self._subscribers):
                if kinds is None or plan.kind in kinds:
                    callback(event)
        return plan

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.state.active_groups

    def visible_records(self) -> list:
        if self.is_empty:
            return []
        active = set(self.state.active_groups)
        return [r for r in self.records if r.league in active]

    def visible_keys(self) -> set:
        return {r.key for r in self.visible_records()}

    def heatmap_attributes(self) -> List[str]:
        return [a for a in HEATMAP_ATTRIBUTES if a in self.attributes]

    def heatmap_matrix(self) -> Optional[CorrelationMatrix]:
        """Matrix over every heatmap attribute (plus active extras), or None when empty."""
        return self._heatmap_matrix

    def correlation_matrix(self) -> Optional[CorrelationMatrix]:
        """Matrix indexed by the active attribute list, or None when empty."""
        if self._heatmap_matrix is None:
            return None
        return self._heatmap_matrix.subset(self.state.active_attributes)

    def has_scores(self) -> bool:
        return any(r.weighted_score is not None for r in self.records)

    def has_clusters(self) -> bool:
        return any(r.cluster is not None for r in self.records)

    def axis_attributes(self) -> List[str]:
        """Attributes that currently have an axis in the parallel view."""
        axes = list(self.state.active_attributes)
        if self.is_empty:
            return axes
        visible = self.visible_records()
        if any(r.weighted_score is not None for r in visible):
            axes.append(SCORE_FIELD)
        if any(r.cluster is not None for r in visible):
            axes.append(CLUSTER_FIELD)
        return axes

    def cluster_variables(self) -> List[str]:
        """Active attributes, plus the weighted score once it exists."""
        variables = list(self.state.active_attributes)
        if self.has_scores():
            variables.append(SCORE_FIELD)
        return variables

    def filtered_count(self) -> int:
        return len(filter_rows(self.visible_records(), self.state.search_text, self.state.brush_ranges))

    def league_dropdown_label(self) -> str:
        selected = self.state.active_groups
        if len(selected) == len(self.groups) and selected:
            return "All Leagues"
        if not selected:
            return "No Leagues"
        if len(selected) == 1:
            return selected[0]
        return f"{len(selected)} leagues selected"

    def column_dropdown_label(self) -> str:
        selected = self.state.active_attributes
        if selected and len(selected) == len(self.heatmap_attributes()):
            return "All Columns"
        if not selected:
            return "No Columns"
        if len(selected) == 1:
            return attribute_title(selected[0])
        return f"{len(selected)} columns selected"

    # -------------------------------------------------------------------------
    # Invariant upkeep
    # -------------------------------------------------------------------------

    def _sanitize(self) -> None:
        s = self.state
        s.active_groups = [g for g in dedupe(s.active_groups) if g in self.groups]
        s.active_attributes = [a for a in dedupe(s.active_attributes) if a in self.attributes]

        weights = default_weights()
        for attr, value in (s.weights or {}).items():
            if attr in weights:
                weights[attr] = clamp_weight(value)
        s.weights = weights

        s.cluster_count = max(0, min(MAX_CLUSTERS, int(s.cluster_count or 0)))
        s.alpha = clamp_unit(s.alpha)
        s.smoothness = clamp_unit(s.smoothness)
        s.bundling = clamp_unit(s.bundling)
        s.search_text = s.search_text or ""
        self._prune_selection()

    def _prune_selection(self) -> None:
        """Drop brushes and highlights that no longer make sense."""
        s = self.state
        if self.is_empty:
            s.brush_ranges = {}
            s.highlighted = set()
            s.page = 1
            return
        axes = set(self.axis_attributes())
        s.brush_ranges = {a: r for a, r in s.brush_ranges.items() if a in axes}
        s.highlighted = set(s.highlighted) & self.visible_keys()
        if s.sort_column is not None and s.sort_column not in self._table_column_candidates():
            s.sort_column = None
            s.sort_direction = ASCENDING
        s.page = clamp_page(s.page, self.filtered_count())

    def _table_column_candidates(self) -> set:
        return {LEAGUE_FIELD, TEAM_FIELD, SCORE_FIELD, CLUSTER_FIELD, *self.state.active_attributes}

    def _refresh_correlation(self) -> None:
        if self.is_empty:
            self._heatmap_matrix = None
            return
        universe = self.heatmap_attributes()
        universe += [a for a in self.state.active_attributes if a not in universe]
        self._heatmap_matrix = compute_correlation_matrix(self.visible_records(), universe)

    def _rebuild_clusters(self) -> None:
        """
        New clustering call for the visible teams. Old labels are purged first;
        an asynchronous collaborator fills them in via receive_cluster_result().
        """
        clear_cluster_labels(self.records)
        if self.is_empty or self.state.cluster_count <= 0:
            self.coordinator.invalidate()
            return

        rows = self.visible_records()
        request = self.coordinator.begin(rows, self.cluster_variables(), self.state.cluster_count)
        if request is None:
            return
        labeled = self.coordinator.dispatch(request, rows)
        if labeled is not None:
            self.coordinator.resolve(request.sequence, labeled, self.records)

    def _structural_plan(self, kind: str, **flags) -> RecomputePlan:
        """Plan for a change that rebuilds the parallel payload from scratch."""
        plan = RecomputePlan(kind=kind, parallel=True, table=True,
                             empty_attributes=not self.state.active_attributes)
        for name, value in flags.items():
            setattr(plan, name, value)
        if self.is_empty:
            # Nothing downstream was computed; every view shows its empty state
            plan.empty_state = True
            plan.correlation = False
            plan.clusters = False
            plan.heatmap = plan.weights_panel = True
        elif self.state.cluster_count > 0:
            plan.clusters = True
        return plan

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    def set_active_groups(self, groups) -> RecomputePlan:
        self.state.active_groups = [g for g in dedupe(groups) if g in self.groups]
        return self._after_groups_change()

    def toggle_group(self, group) -> RecomputePlan:
        if group not in self.groups:
            return RecomputePlan(kind=GROUPS, changed=False)
        active = self.state.active_groups
        if group in active:
            active.remove(group)
        else:
            active.append(group)
        return self._after_groups_change()

    def select_all_groups(self) -> RecomputePlan:
        self.state.active_groups = list(self.groups)
        return self._after_groups_change()

    def select_only_group(self, group) -> RecomputePlan:
        if group not in self.groups:
            return RecomputePlan(kind=GROUPS, changed=False)
        self.state.active_groups = [group]
        return self._after_groups_change(announce=f"{group} only")

    def clear_groups(self) -> RecomputePlan:
        self.state.active_groups = []
        return self._after_groups_change()

    def _after_groups_change(self, announce=None) -> RecomputePlan:
        self.state.page = 1
        self._prune_selection()
        self._refresh_correlation()
        self._rebuild_clusters()
        self._prune_selection()
        self.announcement = announce or self._group_announcement()
        return self._publish(self._structural_plan(GROUPS, correlation=not self.is_empty, heatmap=True))

    def _group_announcement(self) -> str:
        selected = self.state.active_groups
        if not selected:
            return "No leagues selected"
        if len(selected) == len(self.groups):
            return "All leagues selected"
        if len(selected) == 1:
            return f"{selected[0]} selected"
        return f"{len(selected)} leagues selected"

    # -------------------------------------------------------------------------
    # Attributes
    # -------------------------------------------------------------------------

    def set_active_attributes(self, ids) -> RecomputePlan:
        self.state.active_attributes = [a for a in dedupe(ids) if a in self.attributes]
        self._last_removed = None
        return self._after_attributes_change()

    def toggle_attribute(self, attr_id) -> RecomputePlan:
        if attr_id not in self.attributes:
            return RecomputePlan(kind=ATTRIBUTES, changed=False)
        active = self.state.active_attributes
        last_removed = self._last_removed
        self._last_removed = None
        if attr_id in active:
            self._last_removed = (attr_id, active.index(attr_id))
            active.remove(attr_id)
        elif last_removed is not None and last_removed[0] == attr_id:
            # Immediate off/on puts the attribute back where it was
            active.insert(min(last_removed[1], len(active)), attr_id)
        else:
            active.append(attr_id)
        return self._after_attributes_change()

    def select_only_attribute(self, attr_id) -> RecomputePlan:
        if attr_id not in self.attributes:
            return RecomputePlan(kind=ATTRIBUTES, changed=False)
        return self.set_active_attributes([attr_id])

    def select_all_attributes(self) -> RecomputePlan:
        return self.set_active_attributes(self.heatmap_attributes())

    def clear_attributes(self) -> RecomputePlan:
        return self.set_active_attributes([])

    def _after_attributes_change(self) -> RecomputePlan:
        self._refresh_correlation()
        self._rebuild_clusters()
        self._prune_selection()
        return self._publish(self._structural_plan(
            ATTRIBUTES, correlation=not self.is_empty, heatmap=True, weights_panel=True,
        ))

    # -------------------------------------------------------------------------
    # Weights and scores
    # -------------------------------------------------------------------------

    def set_weight(self, attr_id, value) -> RecomputePlan:
        """Store a slider value. Scores only change on apply_weights()."""
        if attr_id not in self.state.weights:
            return RecomputePlan(kind=WEIGHTS, changed=False)
        try:
            weight = clamp_weight(value)
        except (TypeError, ValueError):
            return RecomputePlan(kind=WEIGHTS, changed=False)
        self.state.weights[attr_id] = weight
        return self._publish(RecomputePlan(kind=WEIGHTS, weights_panel=True))

    def apply_weights(self) -> RecomputePlan:
        """Score every team (not only the visible ones), then rebuild the views."""
        if self.is_empty:
            # Nothing is computed without a group filter
            return self._publish(self._structural_plan(SCORES))
        compute_weighted_scores(self.records, self.state.active_attributes, self.state.weights)
        self._rebuild_clusters()
        self._prune_selection()
        return self._publish(self._structural_plan(SCORES, scores=True))

    # -------------------------------------------------------------------------
    # Clusters
    # -------------------------------------------------------------------------

    def set_cluster_count(self, k) -> RecomputePlan:
        try:
            k = int(k)
        except (TypeError, ValueError):
            return RecomputePlan(kind=CLUSTERS, changed=False)
        self.state.cluster_count = max(0, min(MAX_CLUSTERS, k))
        self._rebuild_clusters()
        self._prune_selection()
        return self._publish(self._structural_plan(CLUSTERS, clusters=True, display=True))

    def receive_cluster_result(self, sequence, labeled) -> RecomputePlan:
        """Late answer from an asynchronous collaborator."""
        try:
            self.coordinator.resolve(sequence, labeled, self.records)
        except StaleClusterResult as e:
            print(f"Warning: discarding {e}")
            return RecomputePlan(kind=CLUSTER_RESULT, changed=False)
        self._prune_selection()
        return self._publish(RecomputePlan(kind=CLUSTER_RESULT, clusters=True, parallel=True,
                                           table=True, display=True))

    # -------------------------------------------------------------------------
    # Brushes, highlights, table
    # -------------------------------------------------------------------------

    def set_brush(self, attr_id, value_range) -> RecomputePlan:
        """Store or clear (value_range=None) the brush on one axis."""
        brushes = self.state.brush_ranges
        if value_range is None:
            if attr_id not in brushes:
                return RecomputePlan(kind=BRUSH, changed=False)
            del brushes[attr_id]
        else:
            if self.is_empty or attr_id not in self.axis_attributes():
                return RecomputePlan(kind=BRUSH, changed=False)
            try:
                low, high = sorted(float(v) for v in value_range)
            except (TypeError, ValueError):
                return RecomputePlan(kind=BRUSH, changed=False)
            if math.isnan(low) or math.isnan(high):
                return RecomputePlan(kind=BRUSH, changed=False)
            brushes[attr_id] = (low, high)
        self.state.page = 1
        return self._publish(RecomputePlan(kind=BRUSH, table=True, brush=True))

    def set_highlighted(self, keys) -> RecomputePlan:
        self.state.highlighted = set(keys) & self.visible_keys()
        return self._publish(RecomputePlan(kind=HIGHLIGHT, highlight=True, table=True))

    def toggle_highlighted(self, key, on: bool) -> RecomputePlan:
        keys = set(self.state.highlighted)
        if on:
            keys.add(key)
        else:
            keys.discard(key)
        return self.set_highlighted(keys)

    def set_search_text(self, text) -> RecomputePlan:
        self.state.search_text = "" if text is None else str(text)
        self.state.page = 1
        return self._publish(RecomputePlan(kind=SEARCH, table=True))

    def set_sort(self, column) -> RecomputePlan:
        """Header click: same column flips the direction, new column sorts ascending."""
        if column not in self._table_column_candidates():
            return RecomputePlan(kind=SORT, changed=False)
        s = self.state
        if s.sort_column == column:
            s.sort_direction = -s.sort_direction
        else:
            s.sort_column = column
            s.sort_direction = ASCENDING
        return self._publish(RecomputePlan(kind=SORT, table=True))

    def set_page(self, page) -> RecomputePlan:
        self.state.page = clamp_page(page, self.filtered_count())
        return self._publish(RecomputePlan(kind=PAGE, table=True))

    def next_page(self) -> RecomputePlan:
        return self.set_page(self.state.page + 1)

    def prev_page(self) -> RecomputePlan:
        return self.set_page(self.state.page - 1)

    # -------------------------------------------------------------------------
    # Display parameters
    # -------------------------------------------------------------------------

    def set_alpha(self, value) -> RecomputePlan:
        self.state.alpha = clamp_unit(value)
        return self._publish(RecomputePlan(kind=DISPLAY, display=True))

    def set_smoothness(self, value) -> RecomputePlan:
        self.state.smoothness = clamp_unit(value)
        return self._publish(RecomputePlan(kind=DISPLAY, display=True))

    def set_bundling(self, value) -> RecomputePlan:
        self.state.bundling = clamp_unit(value)
        return self._publish(RecomputePlan(kind=DISPLAY, display=True))
