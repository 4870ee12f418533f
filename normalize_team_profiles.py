"""
================================================================================
NORMALIZE TEAM PROFILES
================================================================================

PURPOSE:
    Turn raw ingested rows (one per team, straight from the league CSV) into
    canonical TeamRecord objects that the rest of the engine works on.

INPUT:
    List of dicts, field name -> raw value (string or number). Usually from
    load_raw_rows() on data/leagues_data_filled.csv.

OUTPUT:
    NormalizeResult
        records - list of TeamRecord (identity + numeric attribute values)
        issues  - list of MalformedRecord (one per field that was nulled)

RULES:
    1. Fields in IGNORE_KEYS are dropped.
    2. league_name + team_name become the EntityKey.
    3. Ordinal fields: label -> rank, original label kept for display.
    4. Everything else: parsed as a float, or None.
    5. A value that is neither a known category nor a number is nulled and
       reported. The load never aborts on a bad cell.
    6. Rows without a league or team are skipped. A repeated identity keeps
       the first row.

================================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from team_attributes import (
    CLUSTER_FIELD,
    HEATMAP_ATTRIBUTES,
    IGNORE_KEYS,
    LEAGUE_FIELD,
    ORDINAL_MAPPINGS,
    SCORE_FIELD,
    TEAM_FIELD,
    REGISTRY,
)

LABEL_SUFFIX = "_label"


# =============================================================================
# RECORD TYPES
# =============================================================================

@dataclass(frozen=True, order=True)
class EntityKey:
    """(league, team) identity. Compared field by field, never by a joined string."""

    league: str
    team: str

    @classmethod
    def from_row(cls, row) -> "EntityKey":
        return cls(str(row[LEAGUE_FIELD]), str(row[TEAM_FIELD]))

    def as_dict(self) -> dict:
        return {LEAGUE_FIELD: self.league, TEAM_FIELD: self.team}


@dataclass
class TeamRecord:
    """One team's tactical profile plus the derived fields."""

    key: EntityKey
    values: Dict[str, Optional[float]] = field(default_factory=dict)
    labels: Dict[str, Optional[str]] = field(default_factory=dict)
    weighted_score: Optional[float] = None
    cluster: Optional[int] = None

    @property
    def league(self) -> str:
        return self.key.league

    @property
    def team(self) -> str:
        return self.key.team

    def get(self, column: str):
        """Value for a column in the row vocabulary the views use."""
        if column == LEAGUE_FIELD:
            return self.key.league
        if column == TEAM_FIELD:
            return self.key.team
        if column == SCORE_FIELD:
            return self.weighted_score
        if column == CLUSTER_FIELD:
            return self.cluster
        if column.endswith(LABEL_SUFFIX) and column[: -len(LABEL_SUFFIX)] in self.labels:
            return self.labels[column[: -len(LABEL_SUFFIX)]]
        return self.values.get(column)

    def as_row(self, attributes=None) -> dict:
        """
        Flatten into a plain dict.

        Args:
            attributes: Attribute ids to include (default: all). Derived fields
                are only included once they have been computed.
        """
        row = self.key.as_dict()
        attrs = self.values.keys() if attributes is None else attributes
        for attr in attrs:
            row[attr] = self.values.get(attr)
            if attr in self.labels:
                row[attr + LABEL_SUFFIX] = self.labels[attr]
        if self.weighted_score is not None:
            row[SCORE_FIELD] = self.weighted_score
        if self.cluster is not None:
            row[CLUSTER_FIELD] = self.cluster
        return row


@dataclass
class MalformedRecord:
    """A raw cell that could not be parsed. The field was set to None."""

    row_index: int
    field: str
    value: object
    reason: str


@dataclass
class NormalizeResult:
    records: List[TeamRecord]
    issues: List[MalformedRecord]


# =============================================================================
# PARSING HELPERS
# =============================================================================

def is_missing(value) -> bool:
    """Empty cell: None, NaN, or blank string."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_number(value):
    """
    Parse a raw cell as a float.

    Returns:
        (number, ok) - number is None for missing or unparseable values,
        ok is False only when the value was present but unparseable.
    """
    if is_missing(value):
        return None, True
    if isinstance(value, bool):
        return None, False
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None, False
    if pd.isna(number) or number in (float("inf"), float("-inf")):
        return None, False
    return number, True


def parse_ordinal(attr_id: str, value):
    """
    Map an ordinal cell to its rank.

    A known label maps through ORDINAL_MAPPINGS. A number that is already a
    valid rank is accepted too.

    Returns:
        (rank, label, ok)
    """
    if is_missing(value):
        return None, None, True

    descriptor = REGISTRY[attr_id]
    label = str(value).strip()
    rank = descriptor.rank_for(label)
    if rank is not None:
        return float(rank), label, True

    number, ok = parse_number(value)
    if ok and number is not None and number.is_integer():
        known = descriptor.label_for(int(number))
        if known is not None:
            return number, known, True

    # Unknown category: null the rank, keep what the user typed for display
    return None, label, False


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize(raw_rows) -> NormalizeResult:
    """
    Normalize raw ingested rows into TeamRecords.

    Args:
        raw_rows: Iterable of dicts (field name -> raw value)

    Returns:
        NormalizeResult with records in input order and any field issues.
    """
    records = []
    issues = []
    seen = set()

    for idx, row in enumerate(raw_rows):
        league = row.get(LEAGUE_FIELD)
        team = row.get(TEAM_FIELD)
        if is_missing(league) or is_missing(team):
            issues.append(MalformedRecord(idx, LEAGUE_FIELD if is_missing(league) else TEAM_FIELD,
                                          league if is_missing(league) else team,
                                          "missing identity"))
            continue

        key = EntityKey(str(league).strip(), str(team).strip())
        if key in seen:
            issues.append(MalformedRecord(idx, TEAM_FIELD, key.team, "duplicate identity"))
            continue
        seen.add(key)

        record = TeamRecord(key=key)
        for name, raw in row.items():
            if name in IGNORE_KEYS or name in (LEAGUE_FIELD, TEAM_FIELD):
                continue

            if name in ORDINAL_MAPPINGS:
                rank, label, ok = parse_ordinal(name, raw)
                record.values[name] = rank
                record.labels[name] = label
                if not ok:
                    issues.append(MalformedRecord(idx, name, raw, "unknown category"))
            else:
                number, ok = parse_number(raw)
                record.values[name] = number
                if not ok:
                    issues.append(MalformedRecord(idx, name, raw, "not a number"))

        records.append(record)

    if issues:
        print(f"Warning: {len(issues)} malformed field(s) while normalizing {len(records)} teams")

    return NormalizeResult(records=records, issues=issues)


def load_raw_rows(csv_path) -> List[dict]:
    """
    Read the ingestion CSV into raw row dicts.

    Cells are kept as strings so normalize() decides what parses. Empty cells
    come back as None.
    """
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=True)
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


# =============================================================================
# RECORD SET QUERIES
# =============================================================================

def available_attributes(records) -> List[str]:
    """
    Attributes with at least one non-null value, heatmap attributes first.
    """
    present = []
    for record in records:
        for attr, value in record.values.items():
            if value is not None and attr not in present:
                present.append(attr)

    ordered = [a for a in HEATMAP_ATTRIBUTES if a in present]
    ordered += [a for a in present if a not in ordered]
    return ordered


def list_groups(records) -> List[str]:
    """Sorted distinct league names."""
    return sorted({record.league for record in records})
