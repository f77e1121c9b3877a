"""
Utility functions for building and saving audit reports.

This module provides functions to:
- Shape the tag inventory and retention plan into serializable structures
- Save reports as JSON, or as a table plus JSON
- Generate timestamped report filenames
"""
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tabulate import tabulate

from retention_audit.logging_utils import get_logger
from retention_audit.retention import ClassificationResult
from retention_audit.tag_history import TagHistorySnapshot

logger = get_logger(__name__)


# ============================================================================
# Timestamp Utilities
# ============================================================================

def get_timestamp_suffix() -> str:
    """
    Generate a timestamp suffix for report filenames.

    Returns:
        String in format: YYYY-MM-DD-HH-MM-SS
    """
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")


def add_timestamp_to_path(path: str, timestamp: Optional[str] = None) -> str:
    """
    Add a timestamp to a file path before the extension.

    Args:
        path: Original file path (e.g., 'reports/retention-plan.json')
        timestamp: Optional timestamp string (defaults to current time)

    Returns:
        Path with timestamp inserted (e.g., 'reports/retention-plan-2026-01-15-14-30-00.json')
    """
    if timestamp is None:
        timestamp = get_timestamp_suffix()

    p = Path(path)
    return str(p.parent / f"{p.stem}-{timestamp}{p.suffix}")


# ============================================================================
# Report Builders
# ============================================================================

def qualified_tag_name(registry_url: str, repository: str, tag: str) -> str:
    """'<registry>/<repository>:<tag>', or '<repository>:<tag>' without a registry."""
    image = f"{registry_url}/{repository}" if registry_url else repository
    return f"{image}:{tag}"


def build_inventory_report(snapshot: TagHistorySnapshot, registry_url: str = "", fmt: str = "grouped") -> Any:
    """Pre-classification view of every recorded tag.

    'grouped' keeps one entry per repository plus the skipped tags; 'flat'
    lists every tag with its fully qualified name.
    """
    if fmt == "flat":
        return [
            {"name": qualified_tag_name(registry_url, repository, tag.name), "createdAt": tag.created_at}
            for repository in snapshot.repositories()
            for tag in snapshot.history(repository)
        ]

    return {
        "registry": registry_url,
        "repositories": [
            {"repository": repository, "tags": [tag.to_dict() for tag in snapshot.history(repository)]}
            for repository in snapshot.repositories()
        ],
        "skipped": [skipped.to_dict() for skipped in snapshot.skipped],
    }


def build_retention_plan(results: Sequence[ClassificationResult]) -> List[Dict[str, Any]]:
    return [result.to_dict() for result in results]


def build_deletion_candidates(results: Sequence[ClassificationResult], registry_url: str = "") -> List[Dict[str, Any]]:
    """Flat list of every tag marked for deletion."""
    return [
        {"name": qualified_tag_name(registry_url, result.repository, tag.name), "createdAt": tag.created_at}
        for result in results
        for tag in result.delete
    ]


def build_summary_rows(results: Sequence[ClassificationResult]) -> List[Dict[str, Any]]:
    rows = []
    for result in results:
        rows.append({
            "repository": result.repository,
            "tags": len(result.retain) + len(result.delete),
            "retain": len(result.retain),
            "delete": len(result.delete),
            "oldest_retained": result.retain[0].created_at if result.retain else None,
        })
    return rows


def format_summary_table(rows: Sequence[Dict[str, Any]]) -> str:
    headers = ["Repository", "Tags", "Retain", "Delete", "Oldest Retained"]
    table_rows = [
        [
            row["repository"],
            row["tags"],
            row["retain"],
            row["delete"],
            row["oldest_retained"].isoformat() if row["oldest_retained"] else "-",
        ]
        for row in rows
    ]
    return tabulate(table_rows, headers=headers, tablefmt="grid")


# ============================================================================
# Report Saving Functions
# ============================================================================

def _to_jsonable(data: Any) -> Any:
    """Recursively convert values json can't serialize.

    - datetime/date: ISO format strings
    - set/frozenset: sorted lists
    - dataclasses: dicts
    - tuples: lists
    """
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    if is_dataclass(data) and not isinstance(data, type):
        return _to_jsonable(asdict(data))
    if isinstance(data, (set, frozenset)):
        try:
            return [_to_jsonable(item) for item in sorted(data)]
        except TypeError:
            return [_to_jsonable(item) for item in data]
    if isinstance(data, dict):
        return {k: _to_jsonable(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_to_jsonable(item) for item in data]
    return data


def save_json(path: str, data: Any, timestamp: bool = False) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save
        timestamp: If True, add timestamp to filename (default: False)

    Returns:
        Path to the saved file
    """
    p = Path(path)
    if timestamp:
        p = Path(add_timestamp_to_path(str(p)))

    p.parent.mkdir(parents=True, exist_ok=True)

    with open(p, 'w') as f:
        json.dump(_to_jsonable(data), f, indent=2)
    logger.info(f"Saved JSON to {p}")
    return str(p)


def save_table_and_json(base_path: str, table_str: str, json_obj: Any, timestamp: bool = True) -> str:
    """
    Write a table string to <base>.txt and JSON object to <base>.json.

    Args:
        base_path: Base path for the reports (without extension)
        table_str: Table content to write
        json_obj: JSON object to write
        timestamp: If True, add timestamp to filenames (default: True)

    Returns:
        Path to the saved JSON file
    """
    base = Path(base_path)
    if timestamp:
        base = base.parent / f"{base.name}-{get_timestamp_suffix()}"

    base.parent.mkdir(parents=True, exist_ok=True)

    with open(f"{base}.txt", "w") as f:
        f.write(table_str)

    json_path = save_json(f"{base}.json", json_obj, timestamp=False)

    logger.info(f"Saved reports to {base}.txt and {base}.json")
    return json_path
