"""Hover/selection state for the event detail panel."""

from __future__ import annotations

from dataclasses import dataclass

from kub_timeline.models import ResourceRef, TimelineEvent


@dataclass
class SelectionState:
    hovered_event_id: str | None = None
    selected_event_id: str | None = None
    drill_target: ResourceRef | None = None

    def hover(self, event: TimelineEvent | None) -> None:
        self.hovered_event_id = event.id if event is not None else None

    def select(self, event: TimelineEvent) -> None:
        """Select an event; selecting the current selection clears it."""
        if self.selected_event_id == event.id:
            self.selected_event_id = None
        else:
            self.selected_event_id = event.id

    def drill_into(self, event: TimelineEvent) -> ResourceRef:
        self.drill_target = event.ref
        return self.drill_target

    def clear(self) -> None:
        self.hovered_event_id = None
        self.selected_event_id = None
        self.drill_target = None

    def selected_in(self, events: list[TimelineEvent]) -> TimelineEvent | None:
        """Resolve the selection against the latest batch.

        The selected event may have aged out of the batch; that is not an
        error, there is simply nothing to show.
        """
        if self.selected_event_id is None:
            return None
        for event in events:
            if event.id == self.selected_event_id:
                return event
        return None
