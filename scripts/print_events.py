#!/usr/bin/env python3
"""
Pretty-print stored earthquake events to a human readable format.

Usage:
    python3 scripts/print_events.py --db-path datasets/quakes/events.sqlite --limit 20
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from src.services.errors import StoreError
from src.services.event_store import DEFAULT_DB_PATH, DEFAULT_TABLE_NAME, open_store


def format_value(value: Any, placeholder: str = "unknown") -> str:
    if value is None:
        return placeholder
    text = str(value).strip()
    return text if text else placeholder


def print_record(record: dict[str, Any], index: int, total: int) -> None:
    print(f"Event {index}/{total}")
    print(f"ID: {format_value(record.get('id'))}")
    print(f"Date: {format_value(record.get('date'))}")
    print(f"Location: {format_value(record.get('location'))}")
    print(f"Magnitude: {format_value(record.get('magnitude'))}")
    print(f"Deaths: {format_value(record.get('deaths'))}")
    print(f"Injured: {format_value(record.get('injured'))}")
    print(f"Source: {format_value(record.get('refUrl'))}")
    print(f"Last updated: {format_value(record.get('lastUpdated'))}")
    print("-" * 88)


def main() -> int:
    parser = argparse.ArgumentParser(description="Pretty-print stored earthquake events.")
    parser.add_argument(
        "--store",
        choices=("sqlite", "dynamodb"),
        default="sqlite",
        help="Store backend to read (default: sqlite).",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=DEFAULT_DB_PATH,
        help=f"SQLite store path (default: {DEFAULT_DB_PATH}).",
    )
    parser.add_argument(
        "--table-name",
        default=DEFAULT_TABLE_NAME,
        help=f"DynamoDB table name (default: {DEFAULT_TABLE_NAME}).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=0,
        help="Optional limit on number of events printed (default: all).",
    )
    parser.add_argument(
        "--filter",
        type=str,
        default="",
        help="Optional case-insensitive filter applied across event text.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON lines instead of the readable layout.",
    )
    args = parser.parse_args()

    try:
        store = open_store(args.store, db_path=args.db_path, table_name=args.table_name)
        try:
            records = [record.to_serializable() for record in store.scan()]
        finally:
            store.close()
    except StoreError as exc:
        raise SystemExit(f"Unable to read events: {exc}")

    if args.filter:
        needle = args.filter.lower()
        records = [
            record for record in records if needle in json.dumps(record, ensure_ascii=True).lower()
        ]

    if args.limit and args.limit > 0:
        records = records[: args.limit]

    if args.json:
        for record in records:
            print(json.dumps(record, ensure_ascii=True))
        return 0

    total = len(records)
    for idx, record in enumerate(records, start=1):
        print_record(record, idx, total)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
