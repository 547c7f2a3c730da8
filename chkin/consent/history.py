"""Encode and decode the renewal history stored alongside a submission."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable

from chkin.consent.status import RenewalHistoryEntry, RenewedBy
from chkin.schemas.history import RENEWAL_HISTORY_SCHEMA
from chkin.services.validation import validate_against_schema


class RenewalHistoryError(ValueError):
    """Stored history does not match RENEWAL_HISTORY_SCHEMA."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid renewal history: " + "; ".join(errors))


def dump_history(entries: Iterable[RenewalHistoryEntry]) -> str:
    return json.dumps([entry.to_dict() for entry in entries])


def load_history(text: str | None) -> list[RenewalHistoryEntry]:
    """Parse and validate a stored history. Empty or missing text is no history."""
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RenewalHistoryError([f"not valid JSON: {exc.msg}"]) from exc

    errors = validate_against_schema(data, RENEWAL_HISTORY_SCHEMA)
    if errors:
        raise RenewalHistoryError(errors)

    try:
        return [_entry_from_dict(item) for item in data]
    except ValueError as exc:
        # unparseable timestamps when no format checker is installed
        raise RenewalHistoryError([str(exc)]) from exc


def _entry_from_dict(item: dict) -> RenewalHistoryEntry:
    return RenewalHistoryEntry(
        renewed_at=datetime.fromisoformat(item["renewedAt"]),
        previous_expires_at=datetime.fromisoformat(item["previousExpiresAt"]),
        new_expires_at=datetime.fromisoformat(item["newExpiresAt"]),
        renewed_by=RenewedBy(item["renewedBy"]),
        duration_months=item["durationMonths"],
    )
