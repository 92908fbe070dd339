"""
Issue categorization — what kind of change turned one value into another.

Shared by the comparator (classifying differences between two extractions)
and the correction layer (logging what a correction did). Pure function,
no knowledge of paths or severities.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import IssueType


@dataclass(frozen=True)
class IssueCategory:
    type: IssueType
    is_fabrication: bool
    notes: str


def categorize_issue(left: Any, right: Any) -> IssueCategory:
    """Classify the transition ``left → right``.

    A value that disappears (non-null → null) is read as evidence that the
    left side fabricated it; a value that appears is data the left side
    missed. Substring containment between two strings suggests cleanup
    rather than a semantic change.
    """
    if left is not None and right is None:
        return IssueCategory(
            type=IssueType.REMOVED_FABRICATION,
            is_fabrication=True,
            notes="Left extraction may have fabricated this value (right side set it to null)",
        )

    if left is None and right is not None:
        return IssueCategory(
            type=IssueType.ADDED_MISSING_DATA,
            is_fabrication=False,
            notes="Right extraction found data that the left extraction missed",
        )

    if isinstance(left, str) and isinstance(right, str):
        if right in left or left in right:
            return IssueCategory(
                type=IssueType.STRING_MODIFICATION,
                is_fabrication=False,
                notes="One value is a subset of the other (possible cleaning/normalization)",
            )

    return IssueCategory(
        type=IssueType.VALUE_CHANGE,
        is_fabrication=False,
        notes="Value changed between extractions",
    )
