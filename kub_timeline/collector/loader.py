"""Load event batches and topology documents.

Accepts the JSON shape served by the timeline API (camelCase keys, ``source``
and ``eventType`` fields) as well as the snake_case field names used by
``TimelineEvent`` itself. Malformed records are skipped, never raised: a
monitoring view should show what it can.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from kub_timeline.models import (
    EventCategory,
    HealthState,
    Operation,
    OwnerRef,
    TimelineEvent,
    Topology,
    TopologyEdge,
    TopologyNode,
)

logger = logging.getLogger(__name__)

SOURCE_CATEGORIES = {
    "informer": EventCategory.CHANGE,
    "k8s_event": EventCategory.PLATFORM_NOTICE,
    "historical": EventCategory.INFERRED,
}

NOTICE_TYPES = ("Normal", "Warning")


class TimelineInputError(Exception):
    """A whole input document could not be read."""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string, datetime, or epoch milliseconds.

    Returns None for anything unparseable. Naive values are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, datetime):
            ts = value
        elif isinstance(value, (int, float)):
            ts = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            ts = datetime.fromisoformat(text)
        else:
            return None
    except (ValueError, OverflowError, OSError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _enum_value(enum_cls: Any, value: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _str_dict(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def parse_event(raw: Any) -> TimelineEvent | None:
    """Convert one raw record into a TimelineEvent, or None if unusable."""
    if not isinstance(raw, dict):
        return None

    kind = raw.get("kind")
    name = raw.get("name")
    if not kind or not name:
        logger.debug("skipping event without kind/name: %r", raw.get("id"))
        return None

    timestamp = parse_timestamp(raw.get("timestamp"))
    if timestamp is None:
        logger.debug("skipping event %r with bad timestamp %r", raw.get("id"), raw.get("timestamp"))
        return None

    # "eventType" carries either an operation or a notice type
    event_type_raw = str(raw.get("eventType") or raw.get("event_type") or "")
    operation = _enum_value(Operation, raw.get("operation") or event_type_raw)
    event_type = event_type_raw if event_type_raw in NOTICE_TYPES else ""

    category = _enum_value(EventCategory, raw.get("category"))
    if category is None:
        category = SOURCE_CATEGORIES.get(str(raw.get("source") or ""))
    if category is None:
        category = EventCategory.PLATFORM_NOTICE if event_type and operation is None else EventCategory.CHANGE

    owner = None
    owner_raw = raw.get("owner")
    if isinstance(owner_raw, dict) and owner_raw.get("kind") and owner_raw.get("name"):
        owner = OwnerRef(str(owner_raw["kind"]), str(owner_raw["name"]))

    diff = raw.get("diff")
    diff_summary = raw.get("diffSummary") or raw.get("diff_summary") or ""
    if not diff_summary and isinstance(diff, dict):
        diff_summary = diff.get("summary") or ""

    try:
        count = int(raw.get("count") or 1)
    except (TypeError, ValueError):
        count = 1

    namespace = str(raw.get("namespace") or "")
    reason = str(raw.get("reason") or "")
    event_id = raw.get("id")
    if not event_id:
        marker = reason or (operation.value if operation else category.value)
        event_id = f"{kind}/{namespace}/{name}@{timestamp.isoformat()}:{marker}"

    return TimelineEvent(
        id=str(event_id),
        kind=str(kind),
        namespace=namespace,
        name=str(name),
        timestamp=timestamp,
        category=category,
        operation=operation,
        event_type=event_type,
        reason=reason,
        message=str(raw.get("message") or ""),
        health_state=_enum_value(HealthState, raw.get("healthState") or raw.get("health_state")),
        owner=owner,
        diff_summary=str(diff_summary),
        created_at=parse_timestamp(raw.get("createdAt") or raw.get("created_at")),
        labels=_str_dict(raw.get("labels")),
        count=count,
    )


def parse_events(data: Any) -> list[TimelineEvent]:
    """Parse a list of records (or ``{"events": [...]}``) into events."""
    if isinstance(data, dict):
        data = data.get("events", [])
    if data is None:
        return []
    if not isinstance(data, list):
        raise TimelineInputError(f"expected a list of events, got {type(data).__name__}")

    events = []
    for raw in data:
        event = parse_event(raw)
        if event is not None:
            events.append(event)
    skipped = len(data) - len(events)
    if skipped:
        logger.debug("skipped %d malformed event record(s)", skipped)
    return events


def parse_topology(data: Any) -> Topology:
    """Parse ``{"nodes": [...], "edges": [...]}`` into a Topology."""
    if data is None:
        return Topology()
    if not isinstance(data, dict):
        raise TimelineInputError(f"expected a topology mapping, got {type(data).__name__}")

    topology = Topology()
    for raw in data.get("nodes") or []:
        if not isinstance(raw, dict) or not raw.get("id"):
            continue
        node_data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
        topology.nodes.append(
            TopologyNode(
                id=str(raw["id"]),
                kind=str(raw.get("kind") or ""),
                name=str(raw.get("name") or ""),
                labels=_str_dict(raw.get("labels") or node_data.get("labels")),
            )
        )
    for raw in data.get("edges") or []:
        if not isinstance(raw, dict) or not raw.get("source") or not raw.get("target"):
            continue
        topology.edges.append(
            TopologyEdge(
                source=str(raw["source"]),
                target=str(raw["target"]),
                type=str(raw.get("type") or ""),
                skip_if_kind_visible=str(
                    raw.get("skipIfKindVisible") or raw.get("skip_if_kind_visible") or ""
                ),
            )
        )
    return topology


def read_document(path: str | Path) -> Any:
    """Read a JSON or YAML file, picking the parser by extension."""
    doc_path = Path(path)
    try:
        text = doc_path.read_text()
    except OSError as exc:
        raise TimelineInputError(f"cannot read {doc_path}: {exc}") from exc

    try:
        if doc_path.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise TimelineInputError(f"cannot parse {doc_path}: {exc}") from exc


def load_events(path: str | Path) -> list[TimelineEvent]:
    return parse_events(read_document(path))


def load_topology(path: str | Path) -> Topology:
    return parse_topology(read_document(path))
