"""Map raw Linear workflow state names onto content pipeline categories."""

from __future__ import annotations

import enum
import functools
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class StateCategory(str, enum.Enum):
    """Normalized status taxonomy for content items."""

    COMPLETED = "completed"
    IN_PROGRESS = "inProgress"
    BACKLOG = "backlog"
    CANCELED = "canceled"


STATE_CATEGORIES: Dict[str, StateCategory] = {
    "published": StateCategory.COMPLETED,
    "editor review": StateCategory.IN_PROGRESS,
    "final review": StateCategory.IN_PROGRESS,
    "seo review": StateCategory.IN_PROGRESS,
    "grammar review": StateCategory.IN_PROGRESS,
    "author/peer review": StateCategory.IN_PROGRESS,
    "in progress": StateCategory.IN_PROGRESS,
    "approved": StateCategory.IN_PROGRESS,
    "approved for publishing": StateCategory.IN_PROGRESS,
    "duplicate": StateCategory.CANCELED,
    "canceled": StateCategory.CANCELED,
    "backlog": StateCategory.BACKLOG,
}


@functools.lru_cache(maxsize=256)
def _warn_unmapped(normalized: str) -> None:
    logger.warning(
        "Unmapped workflow state, counting as backlog",
        extra={"state_name": normalized},
    )


def reset_unmapped_warnings() -> None:
    """Forget which unmapped names were reported so they are logged again."""
    _warn_unmapped.cache_clear()


def classify(state_name: Optional[str]) -> StateCategory:
    """Classify a workflow state name by case-insensitive exact match.

    Surrounding whitespace is significant. Unknown or missing names fall back
    to ``BACKLOG``; each distinct unknown name is logged once (within the last
    256 seen) so the mapping table can be extended.
    """
    normalized = (state_name or "").lower()
    category = STATE_CATEGORIES.get(normalized)
    if category is not None:
        return category

    _warn_unmapped(normalized)
    return StateCategory.BACKLOG
