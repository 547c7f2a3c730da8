"""Audit trail for consent state changes."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def log_action(
    *,
    actor: str,
    action: str,
    resource_type: str,
    resource_id: str,
    detail: dict[str, Any] | None = None,
) -> None:
    """Emit an audit entry. Storing it is left to the log pipeline."""
    if detail:
        logger.info(
            "AUDIT: %s %s %s/%s %s", actor, action, resource_type, resource_id, detail
        )
    else:
        logger.info("AUDIT: %s %s %s/%s", actor, action, resource_type, resource_id)
