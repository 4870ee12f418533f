"""
================================================================================
COMPUTE CORRELATIONS
================================================================================

PURPOSE:
    Pairwise Pearson correlation matrix over a set of attributes, for the
    heatmap view and for anything else that wants attribute relationships.

METHOD:
    Pairwise-complete observations: for each pair (a, b) only rows where BOTH
    values are non-null are used. Rows missing one attribute still count for
    every other pair.

        r = SUM(dx × dy) / sqrt(SUM(dx²) × SUM(dy²))

    Only the upper triangle is computed; the lower triangle is mirrored so
    the result is symmetric bit for bit.

EDGE CASES:
    - No valid pair                  -> 0 (degenerate)
    - Zero variance in either column -> 0 (degenerate)
    - Diagonal                       -> 1, always
    - Floating point overshoot       -> clamped to [-1, 1]

HEATMAP PAYLOAD:
    heatmap_payload() reshapes a matrix for the renderer: titles on both axes,
    y axis reversed (so the diagonal runs top-left to bottom-right), text
    rounded to 2 decimals.

================================================================================
"""

from dataclasses import dataclass, field
from typing import List, Set, Tuple

import numpy as np

from team_attributes import attribute_title

# =============================================================================
# CONFIGURATION
# =============================================================================

# Purple (negative) -> white (neutral) -> orange (positive)
HEATMAP_COLORSCALE = [
    [0, "#7b3294"],
    [0.5, "#f7f7f7"],
    [1, "#e66101"],
]
HEATMAP_TICKVALS = [-1, -0.5, 0, 0.5, 1]
SELECTED_LABEL_COLOR = "#d32f2f"


@dataclass
class CorrelationMatrix:
    """Square symmetric matrix indexed by `attributes`."""

    attributes: List[str]
    values: np.ndarray
    degenerate: Set[Tuple[str, str]] = field(default_factory=set)

    def index(self, attr: str) -> int:
        return self.attributes.index(attr)

    def value(self, a: str, b: str) -> float:
        return float(self.values[self.index(a), self.index(b)])

    def subset(self, attributes) -> "CorrelationMatrix":
        """
        Sub-matrix for `attributes` (which must all be in this matrix).

        Pairwise-complete correlation does not depend on which other columns
        were computed, so slicing gives the same numbers as recomputing.
        """
        idx = [self.index(a) for a in attributes]
        wanted = set(attributes)
        return CorrelationMatrix(
            attributes=list(attributes),
            values=self.values[np.ix_(idx, idx)].copy(),
            degenerate={p for p in self.degenerate if p[0] in wanted and p[1] in wanted},
        )

    def __len__(self):
        return len(self.attributes)


# =============================================================================
# PEARSON
# =============================================================================

def pearson(x: np.ndarray, y: np.ndarray):
    """
    Pearson correlation over pairwise-complete observations.

    Args:
        x, y: Float arrays of equal length, NaN marks a missing value

    Returns:
        (r, degenerate) - r is 0.0 when degenerate
    """
    valid = ~(np.isnan(x) | np.isnan(y))
    n = int(valid.sum())
    if n == 0:
        return 0.0, True

    xv = x[valid]
    yv = y[valid]
    dx = xv - xv.mean()
    dy = yv - yv.mean()

    denom = np.sqrt(np.sum(dx * dx) * np.sum(dy * dy))
    if denom == 0 or not np.isfinite(denom):
        return 0.0, True

    return float(np.sum(dx * dy) / denom), False


def column_array(rows, attr: str) -> np.ndarray:
    """
    Values of one attribute as a float array, NaN for null / non-numeric.

    Rows may be TeamRecords or plain dicts.
    """
    out = np.full(len(rows), np.nan, dtype=np.float64)
    for i, row in enumerate(rows):
        value = row.get(attr)
        if value is None or isinstance(value, bool):
            continue
        try:
            out[i] = float(value)
        except (TypeError, ValueError):
            continue
    return out


def compute_correlation_matrix(rows, attribute_ids) -> CorrelationMatrix:
    """
    Symmetric Pearson correlation matrix.

    Args:
        rows: TeamRecords (or dicts) to correlate over
        attribute_ids: Ordered attribute ids; duplicates are dropped

    Returns:
        CorrelationMatrix indexed by the deduplicated attribute list
    """
    attrs = list(dict.fromkeys(attribute_ids))
    k = len(attrs)
    values = np.eye(k, dtype=np.float64)
    degenerate = set()

    columns = [column_array(rows, a) for a in attrs]

    for i in range(k):
        for j in range(i + 1, k):
            r, is_degenerate = pearson(columns[i], columns[j])
            if is_degenerate:
                degenerate.add((attrs[i], attrs[j]))
                degenerate.add((attrs[j], attrs[i]))
            r = max(-1.0, min(1.0, r))
            values[i, j] = r
            values[j, i] = r

    return CorrelationMatrix(attributes=attrs, values=values, degenerate=degenerate)


# =============================================================================
# HEATMAP PAYLOAD
# =============================================================================

def heatmap_payload(matrix: CorrelationMatrix, selected=()) -> dict:
    """
    Renderer slice for the correlation heatmap.

    Args:
        matrix: CorrelationMatrix
        selected: Active attribute ids; their labels are highlighted

    Returns:
        dict with x/y labels, z (y reversed), text, and label styling
    """
    attrs = matrix.attributes
    y_attrs = list(reversed(attrs))
    z = matrix.values[::-1].tolist()
    text = [[f"{v:.2f}" for v in row] for row in z]

    selected = set(selected)
    return {
        "x": [attribute_title(a) for a in attrs],
        "y": [attribute_title(a) for a in y_attrs],
        "x_ids": list(attrs),
        "y_ids": y_attrs,
        "z": z,
        "text": text,
        "zmin": -1,
        "zmax": 1,
        "colorscale": HEATMAP_COLORSCALE,
        "tickvals": HEATMAP_TICKVALS,
        "highlighted_labels": [attribute_title(a) for a in attrs if a in selected],
        "highlight_color": SELECTED_LABEL_COLOR,
    }
