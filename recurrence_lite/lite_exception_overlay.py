"""Per-occurrence overrides layered on a recurring event.

An override entry is stored under the occurrence's date-key and holds a
sparse patch keyed by wire field name. Scalar fields store the new value
directly. Structured fields (locations, participants, ...) store leaf-level
diffs against the series value, addressed by ``/``-separated paths whose
segments escape ``~`` as ``~0`` and ``/`` as ``~1``.

Every function here is pure: it takes a RecurringEvent and returns a new one.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic.alias_generators import to_camel

from .config_manager import ExpanderConfig
from .lite_datetime_utils import format_duration, from_date_key, parse_duration, to_date_key
from .lite_exceptions import OverlayPatchError
from .lite_models import RecurringEvent
from .lite_occurrence_expander import matches

logger = logging.getLogger(__name__)

STRUCTURED_FIELDS = frozenset({"links", "translations", "locations", "participants", "alerts"})

OVERRIDABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "start",
        "duration",
        "time_zone",
        "status",
        "free_busy_status",
        "use_default_alerts",
    }
    | STRUCTURED_FIELDS
)

_FIELD_BY_WIRE_KEY = {to_camel(field): field for field in OVERRIDABLE_FIELDS}


def wire_key(field: str) -> str:
    """Wire name under which a field is stored in an override entry."""
    return to_camel(field)


def field_name(key: str) -> Optional[str]:
    """Python field name for a wire key or patch path, if it is overridable."""
    return _FIELD_BY_WIRE_KEY.get(key.split("/", 1)[0])


def escape_path_segment(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def unescape_path_segment(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def make_patches(path: str, patches: dict[str, Any], original: Any, current: Any) -> bool:
    """Record in ``patches`` the leaf-level changes turning ``original`` into ``current``.

    Mappings are compared key by key; anything else (lists included) is a
    leaf. A key missing from ``current`` is recorded with a None value.

    Returns:
        True if any patch was recorded
    """
    did_patch = False
    if isinstance(original, dict) and isinstance(current, dict):
        for key, value in current.items():
            child_path = f"{path}/{escape_path_segment(key)}"
            if key in original:
                did_patch = make_patches(child_path, patches, original[key], value) or did_patch
            else:
                patches[child_path] = copy.deepcopy(value)
                did_patch = True
        for key in original:
            if key not in current:
                patches[f"{path}/{escape_path_segment(key)}"] = None
                did_patch = True
    elif original != current:
        patches[path] = copy.deepcopy(current)
        did_patch = True
    return did_patch


def apply_patch(target: dict[str, Any], path: str, value: Any) -> None:
    """Set (or, for None, delete) the leaf at ``path`` inside ``target``.

    Missing intermediate mappings are created.

    Raises:
        OverlayPatchError: If the path runs through a value that is not a mapping
    """
    segments = [unescape_path_segment(segment) for segment in path.split("/")]
    node: Any = target
    for depth, segment in enumerate(segments[:-1]):
        if not isinstance(node, dict):
            raise OverlayPatchError(
                f"Cannot apply patch {path!r}: {'/'.join(segments[:depth])!r} is not an object"
            )
        node = node.setdefault(segment, {})
    if not isinstance(node, dict):
        raise OverlayPatchError(
            f"Cannot apply patch {path!r}: {'/'.join(segments[:-1])!r} is not an object"
        )
    if value is None:
        node.pop(segments[-1], None)
    else:
        node[segments[-1]] = copy.deepcopy(value)


def _encode(field: str, value: Any) -> Any:
    if field == "start" and isinstance(value, datetime):
        return to_date_key(value)
    if field == "duration" and isinstance(value, timedelta):
        return format_duration(value)
    return copy.deepcopy(value)


def _decode(field: str, value: Any) -> Any:
    if field == "start" and isinstance(value, str):
        return from_date_key(value)
    if field == "duration" and isinstance(value, str):
        return parse_duration(value)
    return value


def _belongs_to(path: str, key: str) -> bool:
    return path == key or path.startswith(key + "/")


def occurrence_overrides(event: RecurringEvent, date_key: str) -> dict[str, Any]:
    """The override entry for one occurrence; empty when absent or removed."""
    return (event.recurrence_overrides or {}).get(date_key) or {}


def inherited_value(event: RecurringEvent, date_key: str, field: str) -> Any:
    """Series value of ``field`` for an occurrence, start pinned to its own date-key."""
    if field == "start":
        return from_date_key(date_key)
    return getattr(event, field)


def _effective_from_entry(entry: dict[str, Any], field: str, inherited: Any) -> Any:
    key = wire_key(field)
    if key in entry:
        return _decode(field, entry[key])
    if field not in STRUCTURED_FIELDS:
        return inherited
    value = inherited
    prefix = key + "/"
    for path, patch in entry.items():
        if path.startswith(prefix):
            if value is inherited:
                value = copy.deepcopy(inherited) if inherited is not None else {}
            apply_patch(value, path[len(prefix) :], patch)
    return value


def resolve_field(event: RecurringEvent, date_key: str, field: str) -> Any:
    """Effective value of ``field`` for one occurrence: override if present, else inherited."""
    return _effective_from_entry(
        occurrence_overrides(event, date_key), field, inherited_value(event, date_key, field)
    )


def is_generated(
    event: RecurringEvent, date_key: str, config: Optional[ExpanderConfig] = None
) -> bool:
    """True when the series itself produces the occurrence at ``date_key``."""
    when = from_date_key(date_key)
    if when == event.start or when in event.inclusions:
        return True
    rule = event.recurrence_rule
    return rule is not None and matches(rule, event.start, when, config)


def _pruned_entry(event: RecurringEvent, date_key: str, entry: dict[str, Any]) -> dict[str, Any]:
    pruned: dict[str, Any] = {}
    fields = []
    for path, value in entry.items():
        field = field_name(path)
        if field is None:
            # Not ours to interpret; kept verbatim
            pruned[path] = value
        elif field not in fields:
            fields.append(field)

    for field in fields:
        inherited = inherited_value(event, date_key, field)
        effective = _effective_from_entry(entry, field, inherited)
        key = wire_key(field)
        if field in STRUCTURED_FIELDS:
            make_patches(key, pruned, inherited, effective)
        elif effective != inherited:
            pruned[key] = entry[key]
    return pruned


def prune_overrides(
    event: RecurringEvent, config: Optional[ExpanderConfig] = None
) -> RecurringEvent:
    """Drop overrides that no longer change anything.

    Per-field values equal to the inherited value are removed, and an entry
    left empty is removed too unless its date is not produced by the series
    (an empty entry is then what keeps the extra occurrence alive). An empty
    override map collapses to None.
    """
    overrides = event.recurrence_overrides
    if not overrides:
        return event
    pruned: dict[str, Optional[dict[str, Any]]] = {}
    for date_key, entry in overrides.items():
        if entry is None:
            pruned[date_key] = None
            continue
        kept = _pruned_entry(event, date_key, entry)
        if kept or not is_generated(event, date_key, config):
            pruned[date_key] = kept
    if pruned == overrides:
        return event
    logger.debug(
        "Pruned overrides for event %s: %d -> %d entries", event.id, len(overrides), len(pruned)
    )
    return event.evolve(recurrence_overrides=pruned or None)


def apply_override(
    event: RecurringEvent,
    date_key: str,
    field: str,
    value: Any,
    config: Optional[ExpanderConfig] = None,
) -> RecurringEvent:
    """Set ``field`` on a single occurrence.

    Previous overrides of the field are replaced. Setting the inherited value
    removes the override, and the whole overlay is pruned afterwards.

    Raises:
        OverlayPatchError: If the field cannot vary per occurrence
        InvalidDateKeyError: If ``date_key`` is malformed
    """
    if field not in OVERRIDABLE_FIELDS:
        raise OverlayPatchError(f"{field!r} cannot be overridden for a single occurrence")
    from_date_key(date_key)
    inherited = inherited_value(event, date_key, field)

    overrides = copy.deepcopy(event.recurrence_overrides) or {}
    entry = overrides.get(date_key) or {}
    key = wire_key(field)
    for path in [path for path in entry if _belongs_to(path, key)]:
        del entry[path]

    if field in STRUCTURED_FIELDS:
        make_patches(key, entry, inherited, value)
    elif value != inherited:
        entry[key] = _encode(field, value)
    overrides[date_key] = entry

    return prune_overrides(event.evolve(recurrence_overrides=overrides), config)


def remove_occurrence(event: RecurringEvent, date_key: str) -> RecurringEvent:
    """Remove one occurrence, replacing any override it had."""
    from_date_key(date_key)
    overrides = dict(event.recurrence_overrides or {})
    overrides[date_key] = None
    return event.evolve(recurrence_overrides=overrides)


def restore_occurrence(event: RecurringEvent, date_key: str) -> RecurringEvent:
    """Undo :func:`remove_occurrence`; other overrides are left alone."""
    overrides = dict(event.recurrence_overrides or {})
    if date_key not in overrides or overrides[date_key] is not None:
        return event
    del overrides[date_key]
    return event.evolve(recurrence_overrides=overrides or None)


def shift_overrides(event: RecurringEvent, delta: timedelta) -> RecurringEvent:
    """Re-key overrides and inclusions after the series start moved by ``delta``."""
    if not delta or not (event.recurrence_overrides or event.inclusions):
        return event
    overrides = {
        to_date_key(from_date_key(date_key) + delta): entry
        for date_key, entry in (event.recurrence_overrides or {}).items()
    }
    return event.evolve(
        recurrence_overrides=overrides or None,
        inclusions=tuple(when + delta for when in event.inclusions),
    )
