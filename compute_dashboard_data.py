"""
================================================================================
COMPUTE DASHBOARD DATA
================================================================================

PURPOSE:
    Load the league CSV, apply a selection (leagues, attributes, weights,
    cluster count) and write every view slice to one JSON file.

INPUT:
    data/leagues_data_filled.csv  (one row per team)

OUTPUT:
    dashboard_data.json
        meta           - counts, selection, normalization issues
        parallel       - rows, dimensions, colors for the multi-axis plot
        heatmap        - correlation matrix payload
        table          - first page of the team table
        weights_panel  - slider groups
        controls       - dropdown labels and checkbox states

USAGE:
    python compute_dashboard_data.py
    python compute_dashboard_data.py --leagues "England Premier League" \
        --attributes buildUpPlaySpeed defencePressure --clusters 4 \
        --weights buildUpPlaySpeed=2

================================================================================
"""

import argparse
import json
import sys
from datetime import datetime

from compute_clusters import CLUSTER_OPTIONS
from normalize_team_profiles import load_raw_rows, normalize
from selection_state import SelectionStateManager
from sync_views import ViewSynchronizer

# =============================================================================
# CONFIGURATION
# =============================================================================

INPUT_PATH = "data/leagues_data_filled.csv"
OUTPUT_PATH = "dashboard_data.json"
MAX_ISSUES_REPORTED = 20


def parse_weights(pairs) -> dict:
    """
    Parse ATTR=WEIGHT pairs from the command line.

    Raises:
        ValueError: on a pair without '=' or a non-numeric weight
    """
    weights = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Expected ATTR=WEIGHT, got '{pair}'")
        attr, value = pair.split("=", 1)
        weights[attr.strip()] = float(value)
    return weights


def build_dashboard(raw_rows, leagues=None, attributes=None, clusters=0, weights=None):
    """
    Run one selection through the engine.

    Args:
        raw_rows: Raw row dicts (see load_raw_rows)
        leagues: League names to show (default: all)
        attributes: Active attribute ids (default: none)
        clusters: Cluster count, 0 = off
        weights: Dict of attribute_id -> weight. When given, scores are applied.

    Returns:
        (dashboard dict, NormalizeResult)
    """
    result = normalize(raw_rows)
    manager = SelectionStateManager(result.records)
    sync = ViewSynchronizer(manager)

    if leagues:
        unknown = [g for g in leagues if g not in manager.groups]
        for g in unknown:
            print(f"Warning: unknown league '{g}' ignored")
        manager.set_active_groups(leagues)

    if attributes:
        unknown = [a for a in attributes if a not in manager.attributes]
        for a in unknown:
            print(f"Warning: unknown attribute '{a}' ignored")
        manager.set_active_attributes(attributes)

    if weights is not None:
        for attr, value in weights.items():
            if attr not in manager.state.weights:
                print(f"Warning: no weight slider for '{attr}'")
                continue
            manager.set_weight(attr, value)
        manager.apply_weights()

    if clusters:
        manager.set_cluster_count(clusters)

    dashboard = sync.snapshot()
    dashboard["meta"] = {
        "generated": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "team_count": len(manager.records),
        "visible_count": len(manager.visible_records()),
        "leagues": list(manager.state.active_groups),
        "attributes": list(manager.state.active_attributes),
        "cluster_count": manager.state.cluster_count,
        "issues": [
            {"row": i.row_index, "field": i.field, "value": i.value, "reason": i.reason}
            for i in result.issues
        ],
    }
    sync.close()
    return dashboard, result


def main(input_path=None, output_path=None, argv=None):
    """
    Main function. Can be called directly with arguments or via the command
    line.
    """
    parser = argparse.ArgumentParser(
        description="Compute dashboard view data for the team tactics explorer"
    )
    parser.add_argument(
        "--input", type=str, default=INPUT_PATH,
        help=f"League CSV (default: {INPUT_PATH})"
    )
    parser.add_argument(
        "--output", type=str, default=OUTPUT_PATH,
        help=f"Output JSON path (default: {OUTPUT_PATH})"
    )
    parser.add_argument("--leagues", nargs="*", default=None, help="Leagues to show (default: all)")
    parser.add_argument("--attributes", nargs="*", default=None, help="Active attribute ids")
    parser.add_argument(
        "--clusters", type=int, default=0, choices=CLUSTER_OPTIONS,
        help="Number of clusters, 0 = off"
    )
    parser.add_argument("--weights", nargs="*", default=None, metavar="ATTR=WEIGHT",
                        help="Slider weights; scores are applied when given")
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    input_path = input_path if input_path is not None else args.input
    output_path = output_path if output_path is not None else args.output

    print("=" * 70)
    print("COMPUTE DASHBOARD DATA")
    print("=" * 70)
    print(f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------
    print(f"\n[1/3] Loading {input_path}...")
    try:
        raw_rows = load_raw_rows(input_path)
    except FileNotFoundError:
        print(f"ERROR: {input_path} not found.")
        return None
    print(f"       Rows: {len(raw_rows)}")

    try:
        weights = parse_weights(args.weights) if args.weights is not None else None
    except ValueError as e:
        print(f"ERROR: {e}")
        return None

    # -------------------------------------------------------------------------
    # Compute
    # -------------------------------------------------------------------------
    print("\n[2/3] Computing views...")
    dashboard, result = build_dashboard(
        raw_rows,
        leagues=args.leagues,
        attributes=args.attributes,
        clusters=args.clusters,
        weights=weights,
    )
    meta = dashboard["meta"]
    print(f"       Teams: {meta['team_count']} ({meta['visible_count']} visible)")
    print(f"       Leagues: {len(meta['leagues'])}")
    print(f"       Attributes: {meta['attributes'] or 'none'}")
    print(f"       Clusters: {meta['cluster_count'] or 'off'}")

    if result.issues:
        print(f"       Malformed fields: {len(result.issues)}")
        for issue in result.issues[:MAX_ISSUES_REPORTED]:
            print(f"         row {issue.row_index}: {issue.field}={issue.value!r} ({issue.reason})")

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------
    print(f"\n[3/3] Saving to {output_path}...")
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(dashboard, f, ensure_ascii=False)

    print("\n" + "=" * 70)
    print("DONE")
    print("=" * 70)
    return dashboard


if __name__ == "__main__":
    main()
