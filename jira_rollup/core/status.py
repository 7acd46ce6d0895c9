"""Status normalization and categorization utilities.

Centralized status handling shared by the mappers and the analytics modules.
It uses the workflow configuration from config.py (STATUS_ALIASES,
STATUS_CATEGORY_KEYS).
"""

from __future__ import annotations

from .config import QA_STATUS_KEYWORDS, STATUS_ALIASES, STATUS_CATEGORY_KEYS, UNKNOWN_STATUS
from .models import StatusCategory


def clean_status_name(value: str | None) -> str:
    """Sanitize status string, converting null-like values to "Unknown".

    Parameters
    ----------
    value : str | None
        Raw status string.

    Returns
    -------
    str
        Cleaned status string or "Unknown" for empty/null values.
    """
    if not value:
        return UNKNOWN_STATUS
    text = str(value).strip()
    if not text:
        return UNKNOWN_STATUS
    if text.lower() in {"nan", "none", "null"}:
        return UNKNOWN_STATUS
    return text


def map_status_category(status_name: str | None, category_key: str | None = None) -> StatusCategory:
    """Map a Jira status to one of the three workflow categories.

    The Jira ``statusCategory.key`` wins when present ("new",
    "indeterminate", "done"); otherwise the status name is looked up in
    STATUS_ALIASES, and finally substring hints are tried so localized
    workflows ("En cours de recette") still land somewhere sensible.

    Parameters
    ----------
    status_name : str | None
        Raw status name from Jira.
    category_key : str | None
        ``statusCategory.key`` from the same payload, if any.

    Returns
    -------
    StatusCategory
        TODO when nothing matches.

    Examples
    --------
    >>> map_status_category("In Progress").value
    'in_progress'
    >>> map_status_category("Whatever", "done").value
    'done'
    """
    if category_key:
        mapped = STATUS_CATEGORY_KEYS.get(str(category_key).strip().lower())
        if mapped:
            return StatusCategory(mapped)
    if not status_name:
        return StatusCategory.TODO
    text = str(status_name).strip().lower()
    if text in STATUS_ALIASES:
        return StatusCategory(STATUS_ALIASES[text])
    if any(hint in text for hint in ("done", "terminé", "résolu", "closed")):
        return StatusCategory.DONE
    if any(hint in text for hint in ("progress", "en cours", "qa", "test", "recette", "review")):
        return StatusCategory.IN_PROGRESS
    return StatusCategory.TODO


def is_done(category: StatusCategory | str | None) -> bool:
    if category is None:
        return False
    return StatusCategory(category) is StatusCategory.DONE


def status_bucket(status_name: str | None, category: StatusCategory | str | None) -> str:
    """Board bucket of an issue: "resolved", "qa", "in_progress" or "todo".

    Done wins over everything; a QA keyword in the status name wins over the
    in-progress category.

    Examples
    --------
    >>> status_bucket("En recette", "in_progress")
    'qa'
    >>> status_bucket("Tested", "done")
    'resolved'
    """
    if is_done(category):
        return "resolved"
    text = (status_name or "").strip().lower()
    if any(keyword in text for keyword in QA_STATUS_KEYWORDS):
        return "qa"
    if category is not None and StatusCategory(category) is StatusCategory.IN_PROGRESS:
        return "in_progress"
    return "todo"
