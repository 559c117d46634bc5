"""
Step content extraction.

Quest step content is authored by an external generation pipeline and
arrives as a JSON string, raw bytes, or an already-parsed mapping/list.
Its logical shape is::

    {"activities": [{"activityId": ..., "type": ..., "skillId": ...,
                     "payload": {"experiencePoints": ..., "title": ...}}]}

Keys are matched case-insensitively at every level. Malformed content never
raises; it is logged at DEBUG and treated as having no activities.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from questline.core.logging.logger import get_logger

logger = get_logger(__name__)

ContentTree = Union[Mapping, Sequence]

QUIZ_ACTIVITY_TYPE = "quiz"


@dataclass(frozen=True, slots=True)
class ActivityInfo:
    """One activity entry pulled out of step content."""

    activity_id: str
    type: str = ""
    skill_id: Optional[str] = None
    experience_points: int = 0
    title: Optional[str] = None

    @property
    def is_quiz(self) -> bool:
        return self.type.strip().lower() == QUIZ_ACTIVITY_TYPE


def normalize_content(content: Any) -> Optional[ContentTree]:
    """
    Convert any supported content representation into a parsed tree.

    Returns None for empty, unparsable or unsupported content.
    """
    if content is None:
        return None

    if isinstance(content, (bytes, bytearray)):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Step content is not valid UTF-8")
            return None

    if isinstance(content, str):
        if not content.strip():
            return None
        try:
            content = json.loads(content)
        except ValueError as exc:
            logger.debug(
                "Step content is not valid JSON",
                extra={"error": str(exc), "content_length": len(content)},
            )
            return None

    if isinstance(content, Mapping):
        return content or None

    # str is a Sequence too; a JSON string literal decodes to one
    if isinstance(content, Sequence) and not isinstance(content, str):
        return content or None

    logger.debug(
        "Unsupported step content type",
        extra={"content_type": type(content).__name__},
    )
    return None


def _get_ci(node: Any, key: str) -> Any:
    """Case-insensitive key lookup; exact match wins."""
    if not isinstance(node, Mapping):
        return None
    if key in node:
        return node[key]
    lowered = key.lower()
    for candidate, value in node.items():
        if isinstance(candidate, str) and candidate.lower() == lowered:
            return value
    return None


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return 0
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                return int(float(text))
            except (ValueError, OverflowError):
                return 0
    return 0


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _activity_entries(tree: Optional[ContentTree]) -> Sequence:
    if tree is None:
        return []
    if isinstance(tree, Mapping):
        activities = _get_ci(tree, "activities")
        if isinstance(activities, Sequence) and not isinstance(activities, (str, bytes)):
            return activities
        return []
    return tree


def _to_activity(entry: Any) -> Optional[ActivityInfo]:
    if not isinstance(entry, Mapping):
        return None

    activity_id = _as_optional_str(_get_ci(entry, "activityId"))
    if activity_id is None:
        return None

    payload = _get_ci(entry, "payload")
    title = _as_optional_str(_get_ci(payload, "title")) or _as_optional_str(
        _get_ci(payload, "topic")
    )

    return ActivityInfo(
        activity_id=activity_id,
        type=_as_optional_str(_get_ci(entry, "type")) or "",
        skill_id=_as_optional_str(_get_ci(entry, "skillId"))
        or _as_optional_str(_get_ci(payload, "skillId")),
        experience_points=_as_int(_get_ci(payload, "experiencePoints")),
        title=title,
    )


def extract_activities(content: Any) -> List[ActivityInfo]:
    """
    Extract every activity from step content.

    Entries that are not objects or have no activity id are skipped.
    """
    activities = []
    for entry in _activity_entries(normalize_content(content)):
        activity = _to_activity(entry)
        if activity is not None:
            activities.append(activity)
    return activities


def count_activities(content: Any) -> int:
    return len(extract_activities(content))


def find_activity(content: Any, activity_id: str) -> Optional[ActivityInfo]:
    """Find an activity by id, comparing ids case-insensitively."""
    wanted = str(activity_id).strip().lower()
    for activity in extract_activities(content):
        if activity.activity_id.lower() == wanted:
            return activity
    return None
