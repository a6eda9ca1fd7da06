"""
sheet_reader.py
───────────────
Reads the desired-state CSV and converts it into DesiredRecord objects.

Expected header (exact, case-sensitive):  User, Role, Channel
Extra columns are ignored.  One row per (user, channel) assignment.
"""

from __future__ import annotations
import csv
from pathlib import Path

from loguru import logger

from models import DesiredRecord, ValidationError
from planning import normalize_identity

REQUIRED_COLUMNS = ("User", "Role", "Channel")


def load_records(path: str | Path) -> list[DesiredRecord]:
    path = Path(path)
    if not path.is_file():
        raise ValidationError("missing_file", str(path))

    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            header = reader.fieldnames or []
            if not header:
                raise ValidationError("empty", f"{path.name} is empty")
            missing = [col for col in REQUIRED_COLUMNS if col not in header]
            if missing:
                raise ValidationError("missing_columns", ", ".join(missing))
            rows = list(reader)
    except (UnicodeDecodeError, csv.Error) as e:
        raise ValidationError("malformed", f"{path.name}: {e}") from e

    records: list[DesiredRecord] = []
    bad_rows: list[int] = []

    for number, row in enumerate(rows, start=1):
        user = (row.get("User") or "").strip()
        channel = (row.get("Channel") or "").strip()
        role = (row.get("Role") or "").strip()

        if not user and not channel and not role:
            continue  # blank line
        if not user or not channel:
            bad_rows.append(number)
            continue

        records.append(
            DesiredRecord(
                user=normalize_identity(user), role=role, channel=channel, row=number
            )
        )

    if bad_rows:
        shown = ", ".join(str(n) for n in bad_rows[:10])
        more = f" (+{len(bad_rows) - 10} more)" if len(bad_rows) > 10 else ""
        raise ValidationError("malformed", f"missing User or Channel on row(s) {shown}{more}")
    if not records:
        raise ValidationError("empty", f"{path.name} has no data rows")

    logger.info(
        "Loaded {} rows ({} users, {} channels) from {}",
        len(records),
        len({r.user for r in records}),
        len({r.channel for r in records}),
        path.name,
    )
    return records
