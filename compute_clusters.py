"""
================================================================================
COMPUTE CLUSTERS
================================================================================

PURPOSE:
    Clustering adapter. Packages the visible teams and a variable set for a
    clustering collaborator, then writes the returned labels back onto the
    canonical TeamRecords.

CONTRACT:
    assign_clusters(rows, variable_ids, k, collaborator) -> labeled rows | None

    collaborator(rows, variable_ids, k) returns either
        - a list of row dicts with league_name, team_name, cluster
        - a dict of EntityKey -> cluster
        - None, meaning "I will answer later" (asynchronous collaborator)

    No ordering guarantee: labels are merged by (league, team), never by
    position.

SHORT CIRCUITS:
    - k <= 0                   -> no clustering
    - no eligible variable     -> no clustering
      (eligible = numeric and non-null on at least one row)

STALE RESULTS:
    ClusterCoordinator numbers every request. Only the latest request may be
    merged; anything older raises StaleClusterResult and is discarded by the
    caller. Last write wins by request number, not by completion order.

DEFAULT COLLABORATOR:
    kmeans_collaborator - StandardScaler + KMeans (sklearn). Null cells are
    imputed with the column mean. Labels are 1..k.

================================================================================
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
from sklearn.cluster import KMeans
from sklearn.preprocessing import StandardScaler

from normalize_team_profiles import EntityKey
from team_attributes import CLUSTER_FIELD, LEAGUE_FIELD, TEAM_FIELD
from compute_correlations import column_array

# =============================================================================
# CONFIGURATION
# =============================================================================

CLUSTER_OPTIONS = [0, 3, 4, 5, 6, 7, 8, 9, 10, 12]
MAX_CLUSTERS = 12
RANDOM_STATE = 42
N_INIT = 10

# Okabe-Ito first, then extras so 12 clusters stay distinct
PALETTE = [
    "#56b4e9",  # Sky Blue
    "#d55e00",  # Vermillion
    "#cc79a7",  # Pink
    "#009e73",  # Green
    "#f0e442",  # Yellow
    "#e69f00",  # Orange
    "#0072b2",  # Blue
    "#000000",  # Black
    "#996636ff",  # Brown
    "#666666",  # Gray
    "#808000",  # Olive
    "#cccccc",  # Light Gray
]


class StaleClusterResult(Exception):
    """A clustering result arrived after a newer request was issued."""

    def __init__(self, sequence, latest):
        super().__init__(f"cluster result for request {sequence} is stale (latest is {latest})")
        self.sequence = sequence
        self.latest = latest


# =============================================================================
# VARIABLE SELECTION
# =============================================================================

def eligible_variables(rows, variable_ids) -> List[str]:
    """Variables that are numeric and non-null on at least one row."""
    eligible = []
    for var in dict.fromkeys(variable_ids):
        if var in (LEAGUE_FIELD, TEAM_FIELD, CLUSTER_FIELD):
            continue
        if not np.all(np.isnan(column_array(rows, var))):
            eligible.append(var)
    return eligible


# =============================================================================
# DEFAULT COLLABORATOR
# =============================================================================

def kmeans_collaborator(rows, variable_ids, k) -> List[dict]:
    """
    K-means over standardized variables.

    Args:
        rows: TeamRecords (or dicts with league_name / team_name)
        variable_ids: Eligible variable ids
        k: Requested cluster count (capped at the number of rows)

    Returns:
        List of {league_name, team_name, cluster} with cluster in 1..k
    """
    if not rows:
        return []

    X = np.column_stack([column_array(rows, v) for v in variable_ids])

    # Impute nulls with the column mean
    col_means = np.nanmean(X, axis=0)
    nan_rows, nan_cols = np.where(np.isnan(X))
    X[nan_rows, nan_cols] = col_means[nan_cols]

    X_scaled = StandardScaler().fit_transform(X)

    n_clusters = max(1, min(int(k), len(rows)))
    kmeans = KMeans(n_clusters=n_clusters, random_state=RANDOM_STATE, n_init=N_INIT)
    labels = kmeans.fit_predict(X_scaled)

    labeled = []
    for row, label in zip(rows, labels):
        key = row_key(row)
        labeled.append({
            LEAGUE_FIELD: key.league,
            TEAM_FIELD: key.team,
            CLUSTER_FIELD: int(label) + 1,
        })
    return labeled


# =============================================================================
# ADAPTER
# =============================================================================

def row_key(row) -> EntityKey:
    key = getattr(row, "key", None)
    if isinstance(key, EntityKey):
        return key
    return EntityKey.from_row(row)


def clustering_variables(rows, numeric_variable_ids, k) -> Optional[List[str]]:
    """Eligible variables, or None when clustering is off (k <= 0 or none eligible)."""
    if k is None or k <= 0:
        return None
    return eligible_variables(rows, numeric_variable_ids) or None


def assign_clusters(rows, numeric_variable_ids, k, collaborator=kmeans_collaborator):
    """
    Run the clustering collaborator over `rows`.

    Returns:
        Whatever the collaborator returned, or None when clustering is off
        (k <= 0 or no eligible variable).
    """
    variables = clustering_variables(rows, numeric_variable_ids, k)
    if variables is None:
        return None
    return collaborator(rows, variables, k)


def labels_by_key(labeled) -> Dict[EntityKey, int]:
    """Normalize a collaborator result into EntityKey -> cluster."""
    if labeled is None:
        return {}
    if isinstance(labeled, dict):
        return {key: int(label) for key, label in labeled.items() if label is not None}

    out = {}
    for row in labeled:
        if isinstance(row, dict):
            label = row.get(CLUSTER_FIELD)
        else:
            label = getattr(row, "cluster", None)
        if label is None:
            continue
        out[row_key(row)] = int(label)
    return out


def clear_cluster_labels(records) -> None:
    for record in records:
        record.cluster = None


def merge_cluster_labels(records, labeled, allowed_keys=None) -> int:
    """
    Clear every cluster label, then write the new ones by identity.

    Args:
        records: Canonical TeamRecords (mutated in place)
        labeled: Collaborator output
        allowed_keys: If given, labels for other keys are ignored

    Returns:
        Number of records that received a label
    """
    clear_cluster_labels(records)
    labels = labels_by_key(labeled)

    merged = 0
    for record in records:
        if allowed_keys is not None and record.key not in allowed_keys:
            continue
        label = labels.get(record.key)
        if label is not None:
            record.cluster = label
            merged += 1
    return merged


# =============================================================================
# REQUEST SEQUENCING
# =============================================================================

@dataclass
class ClusterRequest:
    sequence: int
    keys: frozenset
    variables: List[str]
    k: int


class ClusterCoordinator:
    """
    Issues numbered clustering requests and rejects out-of-date results.
    """

    def __init__(self, collaborator=kmeans_collaborator):
        self.collaborator = collaborator
        self.latest = 0
        self.pending: Optional[ClusterRequest] = None
        self.discarded = 0

    def invalidate(self) -> None:
        """Make any in-flight request stale without issuing a new one."""
        self.latest += 1
        self.pending = None

    def begin(self, rows, variable_ids, k) -> Optional[ClusterRequest]:
        """
        Start a new request. Returns None when clustering is off, but still
        invalidates anything in flight.
        """
        self.invalidate()
        variables = clustering_variables(rows, variable_ids, k)
        if variables is None:
            return None
        request = ClusterRequest(
            sequence=self.latest,
            keys=frozenset(row_key(r) for r in rows),
            variables=variables,
            k=int(k),
        )
        self.pending = request
        return request

    def dispatch(self, request: ClusterRequest, rows):
        """Run the request. A None return means the answer comes later."""
        return assign_clusters(rows, request.variables, request.k, self.collaborator)

    def resolve(self, sequence, labeled, records) -> int:
        """
        Merge a result for request `sequence` into `records`.

        Raises:
            StaleClusterResult: if a newer request has been issued
        """
        if self.pending is None or sequence != self.latest:
            self.discarded += 1
            raise StaleClusterResult(sequence, self.latest)
        keys = self.pending.keys
        self.pending = None
        return merge_cluster_labels(records, labeled, allowed_keys=keys)


# =============================================================================
# COLORS
# =============================================================================

def ordinal_color_scale(palette=PALETTE):
    """
    Color function that hands out palette entries in first-seen order,
    cycling when the palette runs out.
    """
    assigned = {}

    def color(value):
        if value not in assigned:
            assigned[value] = palette[len(assigned) % len(palette)]
        return assigned[value]

    return color


def league_color_map(selected_leagues, palette=PALETTE) -> Dict[str, str]:
    """League -> color, by selection order."""
    return {league: palette[idx % len(palette)] for idx, league in enumerate(selected_leagues)}
