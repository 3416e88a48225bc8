from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Iterable, List, Optional

# Minimal NIP-01 helpers: event ids, tag lookup and subscription filters.
# Events travel as plain dicts so they survive json round trips untouched.

REQUIRED_FIELDS = ("id", "pubkey", "created_at", "kind", "tags", "content", "sig")


def serialize_for_id(event: Dict[str, Any]) -> str:
    return json.dumps(
        [0, event["pubkey"], event["created_at"], event["kind"], event["tags"], event["content"]],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_event_id(event: Dict[str, Any]) -> str:
    return hashlib.sha256(serialize_for_id(event).encode("utf-8")).hexdigest()


def validate_event(event: Any) -> Optional[str]:
    """Return a reason string when ``event`` is not a well-formed signed event."""
    if not isinstance(event, dict):
        return "invalid: event must be an object"
    for key in REQUIRED_FIELDS:
        if key not in event:
            return f"invalid: missing {key}"
    if not isinstance(event["kind"], int) or isinstance(event["kind"], bool):
        return "invalid: kind must be an integer"
    if not isinstance(event["created_at"], int) or isinstance(event["created_at"], bool):
        return "invalid: created_at must be an integer"
    if not isinstance(event["content"], str):
        return "invalid: content must be a string"
    tags = event["tags"]
    if not isinstance(tags, list) or not all(isinstance(tag, list) and tag for tag in tags):
        return "invalid: tags must be a list of lists"
    if compute_event_id(event) != event["id"]:
        return "invalid: event id does not match content"
    return None


def tag_values(event: Dict[str, Any], name: str) -> List[str]:
    return [tag[1] for tag in event.get("tags", []) if len(tag) > 1 and tag[0] == name]


def first_tag(event: Dict[str, Any], name: str) -> Optional[str]:
    values = tag_values(event, name)
    return values[0] if values else None


def is_parameterized_replaceable(kind: int) -> bool:
    return 30000 <= kind < 40000


def matches_filter(event: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    if "ids" in flt and event.get("id") not in flt["ids"]:
        return False
    if "kinds" in flt and event.get("kind") not in flt["kinds"]:
        return False
    if "authors" in flt and event.get("pubkey") not in flt["authors"]:
        return False
    if "since" in flt and event.get("created_at", 0) < flt["since"]:
        return False
    if "until" in flt and event.get("created_at", 0) > flt["until"]:
        return False
    for key, wanted in flt.items():
        # Multi-letter tag filters ("#game") are used by game events too.
        if not key.startswith("#"):
            continue
        present = tag_values(event, key[1:])
        if not any(value in wanted for value in present):
            return False
    return True


def matches_any(event: Dict[str, Any], filters: Iterable[Dict[str, Any]]) -> bool:
    return any(matches_filter(event, flt) for flt in filters)
