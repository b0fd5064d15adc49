"""Zoom/pan viewport.

The viewport is a small state machine over a fixed zoom ladder and a pan
offset. Its visible window is a pure function of
``(reference_now, zoom_index, pan_offset)``; ``reference_now`` is captured
once and only moves on an explicit ``refresh``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from kub_timeline.models import ResourceLane, TimeWindow, TimelineEvent

ZOOM_LADDER: tuple[timedelta, ...] = (
    timedelta(minutes=15),
    timedelta(minutes=30),
    timedelta(hours=1),
    timedelta(hours=2),
    timedelta(hours=4),
    timedelta(hours=8),
    timedelta(hours=12),
    timedelta(days=1),
    timedelta(days=2),
    timedelta(days=3),
    timedelta(days=7),
)

# Tick interval per rung, sized so every window shows 6-12 ticks
TICK_INTERVALS: tuple[timedelta, ...] = (
    timedelta(minutes=2),
    timedelta(minutes=5),
    timedelta(minutes=10),
    timedelta(minutes=15),
    timedelta(minutes=30),
    timedelta(hours=1),
    timedelta(hours=2),
    timedelta(hours=3),
    timedelta(hours=6),
    timedelta(hours=12),
    timedelta(days=1),
)

DEFAULT_ZOOM_INDEX = 2  # 1h

PRESETS = {
    "15m": 0,
    "30m": 1,
    "1h": 2,
    "2h": 3,
    "4h": 4,
    "8h": 5,
    "12h": 6,
    "1d": 7,
    "24h": 7,
    "2d": 8,
    "48h": 8,
    "3d": 9,
    "7d": 10,
    "1w": 10,
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def format_zoom(window: timedelta) -> str:
    """Short label for a window length ("15m", "2h", "7d")."""
    minutes = int(window.total_seconds() // 60)
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"


@dataclass(frozen=True)
class ViewportSnapshot:
    visible_window: TimeWindow
    axis_ticks: list[datetime]
    zoom_level: timedelta
    pan_offset: timedelta

    @property
    def label(self) -> str:
        return format_zoom(self.zoom_level)


@dataclass
class Viewport:
    reference_now: datetime
    zoom_index: int = DEFAULT_ZOOM_INDEX
    pan_offset: timedelta = field(default_factory=timedelta)

    def __post_init__(self) -> None:
        self.zoom_index = max(0, min(self.zoom_index, len(ZOOM_LADDER) - 1))
        self.pan_offset = self._clamp_pan(self.pan_offset)

    @classmethod
    def from_preset(cls, preset: str, now: datetime) -> Viewport:
        """Start a session at a named time range; unknown presets mean 1h."""
        return cls(reference_now=now, zoom_index=PRESETS.get(preset.strip().lower(), DEFAULT_ZOOM_INDEX))

    # --- zoom ---

    @property
    def window_length(self) -> timedelta:
        return ZOOM_LADDER[self.zoom_index]

    @property
    def can_zoom_in(self) -> bool:
        return self.zoom_index > 0

    @property
    def can_zoom_out(self) -> bool:
        return self.zoom_index < len(ZOOM_LADDER) - 1

    def zoom_in(self) -> None:
        if self.can_zoom_in:
            self.zoom_index -= 1

    def zoom_out(self) -> None:
        if self.can_zoom_out:
            self.zoom_index += 1

    def fit_zoom(self, events: list[TimelineEvent]) -> None:
        """Pick the smallest rung that still shows the oldest event."""
        if not events:
            return
        oldest = min(e.timestamp for e in events)
        age = self.reference_now - oldest
        for index, window in enumerate(ZOOM_LADDER):
            if age <= window:
                self.zoom_index = index
                return
        self.zoom_index = len(ZOOM_LADDER) - 1

    # --- pan ---

    def pan(self, delta_pixels: float, width_pixels: float) -> None:
        """Shift the window by a pixel drag. Positive deltas move back in time."""
        if width_pixels <= 0:
            return
        ratio = delta_pixels / width_pixels
        try:
            target = self.pan_offset + self.window_length * ratio
        except OverflowError:
            target = self.max_pan if ratio > 0 else timedelta(0)
        self.pan_offset = self._clamp_pan(target)

    @property
    def max_pan(self) -> timedelta:
        """Furthest pan that keeps even the widest window representable."""
        return max(timedelta(0), self.reference_now - _EARLIEST - ZOOM_LADDER[-1])

    def _clamp_pan(self, offset: timedelta) -> timedelta:
        return min(max(timedelta(0), offset), self.max_pan)

    def reset_pan(self) -> None:
        self.pan_offset = timedelta(0)

    def refresh(self, now: datetime) -> None:
        """Re-anchor the viewport on an explicit user action."""
        self.reference_now = now
        self.pan_offset = self._clamp_pan(self.pan_offset)

    # --- derived ---

    def visible_window(self) -> TimeWindow:
        end = self.reference_now - self.pan_offset
        return TimeWindow(end - self.window_length, end)

    def axis_ticks(self) -> list[datetime]:
        window = self.visible_window()
        interval = TICK_INTERVALS[self.zoom_index]
        # First whole multiple of the interval at or after the window start
        steps = -((_EPOCH - window.start) // interval)
        tick = _EPOCH + steps * interval
        ticks = []
        while tick <= window.end:
            ticks.append(tick)
            tick += interval
        return ticks

    def time_to_x(self, ts: datetime) -> float:
        """Position of ``ts`` as a percentage of the visible width."""
        window = self.visible_window()
        return (ts - window.start) / window.duration * 100

    def snapshot(self) -> ViewportSnapshot:
        return ViewportSnapshot(
            visible_window=self.visible_window(),
            axis_ticks=self.axis_ticks(),
            zoom_level=self.window_length,
            pan_offset=self.pan_offset,
        )


def visible_lanes(lanes: list[ResourceLane], window: TimeWindow) -> list[ResourceLane]:
    """Lanes with at least one event inside the window, order preserved."""
    return [
        lane
        for lane in lanes
        if any(window.contains(e.timestamp) for e in lane.all_events_sorted)
    ]
