"""
================================================================================
COMPUTE WEIGHTED SCORES
================================================================================

PURPOSE:
    Per-team composite score from the weight sliders.

FORMULA:
    weightedScore = SUM(value × weight) / SUM(weight)

    over every attribute that is
        - in the active attribute list,
        - present on the record with a non-null value,
        - configured with a weight.

    Ordinal attributes contribute their rank.

EDGE CASES:
    - No qualifying attribute        -> 0.00 (never None / NaN)
    - Every used weight is zero      -> 0.00
    - Result rounded to 2 decimals

The function mutates TeamRecord.weighted_score in place and is idempotent for
the same inputs.

================================================================================
"""

from team_attributes import WEIGHTED_ATTRIBUTES

# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_WEIGHT = 1.0
WEIGHT_RANGE = (0.0, 2.0)
WEIGHT_STEP = 0.1
SCORE_DECIMALS = 2


def default_weights() -> dict:
    """One weight per weightable attribute, all at DEFAULT_WEIGHT."""
    return {attr: DEFAULT_WEIGHT for attr in WEIGHTED_ATTRIBUTES}


def clamp_weight(value) -> float:
    low, high = WEIGHT_RANGE
    return max(low, min(high, float(value)))


def weighted_score(record, active_attributes, weights) -> float:
    """
    Score for a single record.

    Args:
        record: TeamRecord
        active_attributes: Attribute ids currently selected
        weights: Dict of attribute_id -> weight

    Returns:
        Score rounded to SCORE_DECIMALS
    """
    total = 0.0
    total_weight = 0.0

    for attr in active_attributes:
        if attr not in weights:
            continue
        value = record.values.get(attr)
        if value is None:
            continue
        w = weights[attr]
        total += value * w
        total_weight += w

    if total_weight <= 0:
        return 0.0

    return round(total / total_weight, SCORE_DECIMALS)


def compute_weighted_scores(records, active_attributes, weights) -> None:
    """
    Write weighted_score onto every record.

    Args:
        records: List of TeamRecord (mutated in place)
        active_attributes: Attribute ids currently selected
        weights: Dict of attribute_id -> weight
    """
    # Dedupe so an attribute listed twice cannot count double
    active = list(dict.fromkeys(active_attributes))
    for record in records:
        record.weighted_score = weighted_score(record, active, weights)
