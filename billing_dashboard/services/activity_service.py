"""Append-only audit trail of user-visible billing actions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..domain.models import ActivityAction, UserActivity
from ..domain.ports.persistence import ActivityRepository

logger = logging.getLogger(__name__)


class ActivityLogger:
    """Records UserActivity entries without ever failing the calling operation."""

    def __init__(self, repository: ActivityRepository) -> None:
        self._repository = repository

    def record(
        self,
        user_id: Optional[int],
        action: Optional[ActivityAction],
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[UserActivity]:
        """
        Append one activity entry.

        Args:
            user_id: Owner of the entry
            action: Activity tag
            description: Human readable summary
            metadata: Extra JSON-serialisable context

        Returns:
            The stored entry, or None when it could not be written.
        """
        if user_id is None or action is None:
            logger.error(
                "Dropping activity without user or action: user=%s action=%s description=%s",
                user_id,
                action,
                description,
            )
            return None
        tag = action.value if isinstance(action, ActivityAction) else str(action)
        try:
            return self._repository.create_activity(user_id, tag, description, metadata or {})
        except Exception:
            # A lost audit line must not fail the billing operation that produced it.
            logger.exception("Failed to record %s activity for user %s", tag, user_id)
            return None

    def list_for_user(self, user_id: int, page: int = 1, limit: int = 20) -> Tuple[List[UserActivity], int]:
        """Return one page of the user's trail, newest first, plus the total count."""
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        items = self._repository.list_activities_for_user(user_id, limit, (page - 1) * limit)
        total = self._repository.count_activities_for_user(user_id)
        return items, total
