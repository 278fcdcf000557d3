"""Splitting a recurring series into a linked predecessor and successor.

Used for "this and following" edits: the predecessor keeps the original
identity and every occurrence before the split, the successor is a new event
starting at the split occurrence. The two are linked through ``related_to``
so the chain can be walked either way.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from .config_manager import ExpanderConfig
from .lite_datetime_utils import from_date_key
from .lite_event_series import EventSeries
from .lite_exception_overlay import prune_overrides
from .lite_models import RELATION_FIRST, RELATION_NEXT, RecurringEvent
from .lite_occurrence_expander import expand, matches

logger = logging.getLogger(__name__)


def _successor_links(event: RecurringEvent) -> dict[str, str]:
    related = event.related_to or {}
    first = next(
        (uid for uid, relation in related.items() if relation == RELATION_FIRST), event.uid
    )
    links = {first: RELATION_FIRST}
    links.update((uid, relation) for uid, relation in related.items() if relation == RELATION_NEXT)
    return links


def split_at(
    event: RecurringEvent, date_key: str, config: Optional[ExpanderConfig] = None
) -> tuple[RecurringEvent, Optional[RecurringEvent]]:
    """Split ``event`` at the occurrence keyed ``date_key``.

    Args:
        event: Recurring event to split
        date_key: Key of the first occurrence the successor should own
        config: Expansion limits

    Returns:
        (predecessor, successor). The successor is None, and the predecessor is
        ``event`` itself, when there is nothing to split: no rule, a key at or
        before the first occurrence, a key past the end of the series, or a
        key the rule does not generate (an inclusion, for instance).

    Raises:
        InvalidDateKeyError: If ``date_key`` is malformed
    """
    rule = event.recurrence_rule
    split_start = from_date_key(date_key)
    if rule is None or split_start <= event.start:
        logger.debug("Not splitting event %s at %s: nothing before it", event.id, date_key)
        return event, None
    if rule.until is not None and rule.until < split_start:
        logger.debug("Not splitting event %s at %s: series has ended", event.id, date_key)
        return event, None
    if not matches(rule, event.start, split_start, config):
        # The successor runs the same rule from its start, so it must be on-rule
        logger.debug(
            "Not splitting event %s at %s: not an occurrence of the rule", event.id, date_key
        )
        return event, None

    prior = expand(rule, event.start, None, split_start, config)
    split_index = len(prior)
    if rule.count is not None and split_index >= rule.count:
        logger.debug("Not splitting event %s at %s: series has ended", event.id, date_key)
        return event, None

    if rule.count is not None:
        predecessor_rule = rule.evolve(count=split_index)
        successor_rule = rule.evolve(count=rule.count - split_index)
    else:
        predecessor_rule = rule.evolve(until=prior[-1])
        successor_rule = rule

    overrides = event.recurrence_overrides or {}
    successor_uid = str(uuid4())

    predecessor_links = {
        uid: relation
        for uid, relation in (event.related_to or {}).items()
        if relation != RELATION_NEXT
    }
    predecessor_links[successor_uid] = RELATION_NEXT

    predecessor = event.evolve(
        recurrence_rule=predecessor_rule,
        recurrence_overrides={key: patch for key, patch in overrides.items() if key < date_key},
        inclusions=tuple(when for when in event.inclusions if when < split_start),
        related_to=predecessor_links,
    )
    successor = event.evolve(
        id=uuid4().hex,
        uid=successor_uid,
        start=split_start,
        recurrence_rule=successor_rule,
        recurrence_overrides={key: patch for key, patch in overrides.items() if key >= date_key},
        inclusions=tuple(when for when in event.inclusions if when >= split_start),
        related_to=_successor_links(event),
    )
    logger.info(
        "Split event %s at %s (occurrence %d); successor %s",
        event.id,
        date_key,
        split_index,
        successor.id,
    )
    return prune_overrides(predecessor, config), prune_overrides(successor, config)


def split_series(series: EventSeries, date_key: str) -> Optional[EventSeries]:
    """Split a live series in place.

    The series keeps the predecessor; the returned series, sharing its
    occurrence cache and settings, owns the successor. Returns None when
    there was nothing to split.
    """
    successor: Optional[RecurringEvent] = None

    def transform(event: RecurringEvent) -> RecurringEvent:
        nonlocal successor
        predecessor, successor = split_at(event, date_key, series.config)
        return predecessor

    series.update(transform)
    if successor is None:
        return None
    return EventSeries(successor, series.cache, series.config, series.converter)
