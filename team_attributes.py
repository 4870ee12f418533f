"""
================================================================================
TEAM ATTRIBUTES
================================================================================

PURPOSE:
    Static metadata for the team tactics dataset. Every other module asks this
    one what an attribute is called, which group it belongs to, and whether
    its values are plain numbers or ranked categories.

ATTRIBUTE GROUPS:
    Build Up         - speed, dribbling, passing, positioning (ordinal)
    Chance Creation  - passing, crossing, shooting, positioning (ordinal)
    Defence          - pressure, aggression, team width, defender line (ordinal)

ORDINAL ATTRIBUTES:
    Stored as an integer rank (for plotting, sorting, correlating) plus the
    original label (for display). Ranks are dense and start at 1:

        buildUpPlayPositioningClass     Organised=1, Free Form=2
        chanceCreationPositioningClass  Organised=1, Free Form=2
        defenceDefenderLineClass        Cover=1, Offside Trap=2

IDENTITY FIELDS:
    league_name, team_name  -> EntityKey (see normalize_team_profiles.py)

DERIVED FIELDS:
    weightedScore  (compute_weighted_scores.py)
    cluster        (compute_clusters.py)

================================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

# =============================================================================
# CONFIGURATION
# =============================================================================

LEAGUE_FIELD = "league_name"
TEAM_FIELD = "team_name"
SCORE_FIELD = "weightedScore"
CLUSTER_FIELD = "cluster"

IDENTITY_FIELDS = (LEAGUE_FIELD, TEAM_FIELD)

# Raw columns that carry no analytical value. The *Class columns here are the
# category versions of numeric columns that are already kept.
IGNORE_KEYS = {
    "team_fifa_api_id",
    "team_api_id",
    "league_name_id",
    "date",
    "buildUpPlaySpeedClass",
    "buildUpPlayDribblingClass",
    "buildUpPlayPassingClass",
    "chanceCreationShootingClass",
    "chanceCreationCrossingClass",
    "chanceCreationPassingClass",
    "defencePressureClass",
    "defenceAggressionClass",
    "defenceTeamWidthClass",
}

ATTRIBUTE_GROUPS = {
    "Build Up": [
        "buildUpPlaySpeed",
        "buildUpPlayDribbling",
        "buildUpPlayPassing",
        "buildUpPlayPositioningClass",
    ],
    "Chance Creation": [
        "chanceCreationPassing",
        "chanceCreationCrossing",
        "chanceCreationShooting",
        "chanceCreationPositioningClass",
    ],
    "Defence": [
        "defencePressure",
        "defenceAggression",
        "defenceTeamWidth",
        "defenceDefenderLineClass",
    ],
}

ORDINAL_MAPPINGS = {
    "buildUpPlayPositioningClass": {"Organised": 1, "Free Form": 2},
    "chanceCreationPositioningClass": {"Organised": 1, "Free Form": 2},
    "defenceDefenderLineClass": {"Cover": 1, "Offside Trap": 2},
}

ATTRIBUTE_TITLES = {
    LEAGUE_FIELD: "League",
    TEAM_FIELD: "Team",
    "buildUpPlaySpeed": "Speed",
    "buildUpPlayDribbling": "Dribbling",
    "buildUpPlayPassing": "Passing",
    "buildUpPlayPositioningClass": "Positioning",
    "chanceCreationPassing": "Creation Passing",
    "chanceCreationCrossing": "Creation Crossing",
    "chanceCreationShooting": "Creation Shooting",
    "chanceCreationPositioningClass": "Creation Positioning",
    "defencePressure": "Pressure",
    "defenceAggression": "Aggression",
    "defenceTeamWidth": "Team Width",
    "defenceDefenderLineClass": "Defender Line",
    SCORE_FIELD: "Weighted Score",
    CLUSTER_FIELD: "Cluster",
}

# Heatmap rows/columns, in group order
HEATMAP_ATTRIBUTES = [attr for group in ATTRIBUTE_GROUPS.values() for attr in group]

# Every grouped attribute gets a weight slider
WEIGHTED_ATTRIBUTES = list(HEATMAP_ATTRIBUTES)

NUMERIC = "numeric"
ORDINAL = "ordinal"


# =============================================================================
# DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class AttributeDescriptor:
    """Metadata for one analytical attribute."""

    id: str
    title: str
    group: str
    kind: str = NUMERIC
    ranks: Dict[str, int] = field(default_factory=dict)

    @property
    def is_ordinal(self) -> bool:
        return self.kind == ORDINAL

    def rank_for(self, label) -> Optional[int]:
        """Rank of a category label, or None if the label is unknown."""
        if label is None:
            return None
        return self.ranks.get(str(label).strip())

    def label_for(self, rank) -> Optional[str]:
        """Category label for a rank, or None if the rank is not in the mapping."""
        for label, value in self.ranks.items():
            if value == rank:
                return label
        return None


def validate_ordinal_mapping(attr_id: str, mapping: dict) -> None:
    """
    Check that an ordinal mapping is a bijection onto 1..n.

    Raises:
        ValueError: if ranks are not dense integers starting at 1 or two
            labels share a rank.
    """
    ranks = sorted(mapping.values())
    if ranks != list(range(1, len(mapping) + 1)):
        raise ValueError(
            f"Ordinal mapping for '{attr_id}' must use dense ranks 1..{len(mapping)}, got {ranks}"
        )


def build_registry() -> Dict[str, AttributeDescriptor]:
    """
    Build the attribute registry from the static tables above.

    Returns:
        Dict of attribute_id -> AttributeDescriptor, in heatmap order.
    """
    registry = {}
    for group_name, attrs in ATTRIBUTE_GROUPS.items():
        for attr in attrs:
            if attr in ORDINAL_MAPPINGS:
                validate_ordinal_mapping(attr, ORDINAL_MAPPINGS[attr])
                registry[attr] = AttributeDescriptor(
                    id=attr,
                    title=ATTRIBUTE_TITLES.get(attr, attr),
                    group=group_name,
                    kind=ORDINAL,
                    ranks=dict(ORDINAL_MAPPINGS[attr]),
                )
            else:
                registry[attr] = AttributeDescriptor(
                    id=attr,
                    title=ATTRIBUTE_TITLES.get(attr, attr),
                    group=group_name,
                )

    # Ordinal mappings must all belong to a grouped attribute
    orphans = set(ORDINAL_MAPPINGS) - set(registry)
    if orphans:
        raise ValueError(f"Ordinal mappings without a group: {sorted(orphans)}")

    return registry


REGISTRY = build_registry()


# =============================================================================
# LOOKUPS
# =============================================================================

def get_descriptor(attr_id: str) -> Optional[AttributeDescriptor]:
    return REGISTRY.get(attr_id)


def is_ordinal(attr_id: str) -> bool:
    return attr_id in ORDINAL_MAPPINGS


def attribute_title(attr_id: str) -> str:
    """Display title, falling back to the raw id."""
    return ATTRIBUTE_TITLES.get(attr_id, attr_id)


def attribute_for_title(title) -> Optional[str]:
    """
    Map a display title (as emitted by a renderer) back to an attribute id.

    Raw ids are accepted as well, since some renderers report the dimension
    key instead of the pretty label. Unknown text returns None.
    """
    if title is None:
        return None
    text = str(title).strip()
    for attr_id, attr_title in ATTRIBUTE_TITLES.items():
        if attr_title == text:
            return attr_id
    if text in ATTRIBUTE_TITLES:
        return text
    return None


def ordinal_label(attr_id: str, rank) -> Optional[str]:
    descriptor = REGISTRY.get(attr_id)
    if descriptor is None or not descriptor.is_ordinal:
        return None
    return descriptor.label_for(rank)


def ordinal_tick_labels(attr_id: str) -> Dict[int, str]:
    """Rank -> label map used to relabel ordinal axis ticks."""
    mapping = ORDINAL_MAPPINGS.get(attr_id, {})
    return {rank: label for label, rank in mapping.items()}


def get_column_type(col: str) -> str:
    """Header group shown above a table column."""
    if col in IDENTITY_FIELDS:
        return "Team"
    if col == SCORE_FIELD:
        return "Score"
    if col == CLUSTER_FIELD:
        return "Cluster"
    descriptor = REGISTRY.get(col)
    if descriptor:
        return descriptor.group
    return ""


def attributes_in_group(group_name: str, selected: List[str]) -> List[str]:
    """Grouped attributes that are also in `selected`, in registry order."""
    return [a for a in ATTRIBUTE_GROUPS.get(group_name, []) if a in selected]
