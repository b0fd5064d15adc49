"""Rich terminal output for the timeline swimlanes."""

from __future__ import annotations

from datetime import datetime, timedelta

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from kub_timeline.engine.classifier import classify
from kub_timeline.engine.hierarchy import APP_GROUP_KIND
from kub_timeline.engine.timeline import TimelineView
from kub_timeline.models import (
    EventCategory,
    HealthSpanResult,
    HealthState,
    Operation,
    ResourceLane,
    TimelineEvent,
    TimeWindow,
)

LABEL_WIDTH = 34
SCORE_WIDTH = 8
MIN_BAR_WIDTH = 20

HEALTH_CHAR = "━"
GAP_CHAR = "·"


def bar_width_for(total_width: int, show_scores: bool = False) -> int:
    """Columns left for the timeline bar after the label (and score) columns."""
    score_width = SCORE_WIDTH + 1 if show_scores else 0
    return max(MIN_BAR_WIDTH, total_width - LABEL_WIDTH - score_width - 2)


def event_marker(event: TimelineEvent) -> tuple[str, str]:
    """Glyph and style for an event marker."""
    c = classify(event)
    if c.issue_category is not None:
        return c.issue_category.symbol, "bold white on red"
    if c.is_problematic:
        return "!", "bold yellow"
    if event.operation == Operation.DELETE:
        return "x", "bold red"
    if event.operation == Operation.ADD:
        return "+", "bold green"
    if event.category == EventCategory.PLATFORM_NOTICE:
        return "◆", "blue"
    return "•", "cyan"


def render_timeline(
    view: TimelineView,
    console: Console,
    title: str = "",
    width: int = 0,
    show_scores: bool = False,
) -> None:
    """Render a full timeline view to the terminal."""
    console.print()
    _render_header(view, console, title)

    if view.is_empty:
        console.print(
            Panel(
                Text("No resource activity in this time range.", style="dim"),
                border_style="dim",
            )
        )
        _render_footer(view, console)
        return

    bar_width = bar_width_for(width or console.width, show_scores)
    _render_lanes(view, console, bar_width, show_scores)
    if show_scores:
        _render_score_details(view, console)
    _render_footer(view, console)


def _render_header(view: TimelineView, console: Console, title: str) -> None:
    snap = view.viewport
    header = Text()
    header.append("Window: ", style="bold")
    if snap is not None:
        window = snap.visible_window
        header.append(
            f"{window.start.strftime('%Y-%m-%d %H:%M')} → {window.end.strftime('%H:%M')} UTC",
            style="cyan",
        )
        header.append("  |  Zoom: ", style="bold")
        header.append(snap.label, style="cyan")
        if snap.pan_offset:
            header.append("  |  Panned: ", style="bold")
            header.append(f"-{_format_offset(snap.pan_offset)}", style="yellow")
    header.append("  |  Lanes: ", style="bold")
    header.append(str(len(view.lanes)), style="cyan")
    header.append("  |  Events: ", style="bold")
    header.append(str(view.total_events), style="cyan")
    if view.problem_count:
        header.append("  |  Problems: ", style="bold")
        header.append(str(view.problem_count), style="bold red")

    console.print(
        Panel(
            header,
            title=f"[bold]{title or 'Resource Timeline'}[/bold]",
            border_style="blue",
        )
    )


def _format_offset(offset: timedelta) -> str:
    minutes = int(offset.total_seconds() // 60)
    if minutes < 60:
        return f"{minutes}m"
    if minutes < 24 * 60:
        return f"{minutes // 60}h{minutes % 60:02d}m"
    return f"{minutes // (24 * 60)}d{(minutes // 60) % 24}h"


def _column(ts: datetime, window: TimeWindow, bar_width: int) -> int:
    pct = (ts - window.start) / window.duration
    return max(0, min(bar_width - 1, int(pct * bar_width)))


def axis_text(ticks: list[datetime], window: TimeWindow, bar_width: int) -> Text:
    """Tick labels positioned along the bar; overlapping labels are dropped."""
    long_range = window.duration > timedelta(days=1)
    cells = [" "] * bar_width
    next_free = 0
    for tick in ticks:
        label = tick.strftime("%m-%d %H:%M" if long_range else "%H:%M")
        col = _column(tick, window, bar_width)
        if col < next_free or col + len(label) > bar_width:
            continue
        cells[col : col + len(label)] = list(label)
        next_free = col + len(label) + 1
    return Text("".join(cells), style="bold")


def lane_bar(
    lane: ResourceLane,
    spans: HealthSpanResult | None,
    window: TimeWindow,
    bar_width: int,
) -> Text:
    """Health bar for one lane with its own events overlaid as markers."""
    cells: list[tuple[str, str]] = [(GAP_CHAR, "grey23")] * bar_width

    for span in spans.spans if spans else []:
        start = max(span.start, window.start)
        end = min(span.end, window.end)
        if end <= start:
            continue
        first = _column(start, window, bar_width)
        last = _column(end, window, bar_width)
        for col in range(first, last + 1):
            cells[col] = (HEALTH_CHAR, span.health.rich_style)

    # Markers: latest event with the highest paint priority wins a cell
    priorities: dict[int, int] = {}
    for event in lane.events:
        if not window.contains(event.timestamp):
            continue
        col = _column(event.timestamp, window, bar_width)
        glyph, style = event_marker(event)
        rank = _paint_rank(event)
        if rank >= priorities.get(col, -1):
            priorities[col] = rank
            cells[col] = (glyph, style)

    text = Text()
    for glyph, style in cells:
        text.append(glyph, style=style)
    return text


def _paint_rank(event: TimelineEvent) -> int:
    c = classify(event)
    if c.is_critical:
        return 4
    if c.is_problematic:
        return 3
    if event.operation == Operation.DELETE:
        return 2
    if event.operation == Operation.ADD:
        return 1
    return 0


def lane_label(lane: ResourceLane, depth: int) -> Text:
    label = Text("  " * depth)
    if lane.children:
        label.append("▾ ", style="dim")
    if lane.kind == APP_GROUP_KIND:
        label.append(f"app:{lane.name}", style="bold magenta")
    else:
        label.append(f"{lane.kind}/", style="dim")
        label.append(lane.name, style="bold" if depth == 0 else "")
    if depth == 0 and lane.namespace:
        label.append(f" ({lane.namespace})", style="dim")
    return label


def _render_lanes(
    view: TimelineView,
    console: Console,
    bar_width: int,
    show_scores: bool,
) -> None:
    snap = view.viewport
    window = snap.visible_window

    table = Table(box=None, padding=(0, 1), show_edge=False, header_style="bold")
    table.add_column("Resource", width=LABEL_WIDTH, no_wrap=True, overflow="ellipsis")
    table.add_column(axis_text(snap.axis_ticks, window, bar_width), width=bar_width, no_wrap=True)
    if show_scores:
        table.add_column("Score", width=SCORE_WIDTH, justify="right")

    def add(lane: ResourceLane, depth: int) -> None:
        row = [lane_label(lane, depth), lane_bar(lane, view.spans.get(lane.id), window, bar_width)]
        if show_scores:
            row.append(str(lane.score) if depth == 0 else "")
        table.add_row(*row)
        for child in lane.children:
            add(child, depth + 1)

    for lane in view.lanes:
        add(lane, 0)

    console.print(table)


def _render_score_details(view: TimelineView, console: Console) -> None:
    table = Table(title="Score breakdown", box=None, padding=(0, 2), title_style="bold")
    table.add_column("Lane", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Details", style="dim")
    for lane in view.lanes:
        details = lane.score_breakdown.details if lane.score_breakdown else ""
        counts = str(len(lane.events))
        if lane.child_event_count:
            counts += f" (+{lane.child_event_count})"
        table.add_row(lane.id, str(lane.score), counts, details)
    console.print()
    console.print(table)


def _render_footer(view: TimelineView, console: Console) -> None:
    console.print()
    legend = Text()
    for state in HealthState:
        legend.append(HEALTH_CHAR * 2, style=state.rich_style)
        legend.append(f" {state.value}  ", style="dim")
    legend.append("+ add  x delete  • update  ◆ notice  ! warning", style="dim")
    console.print(legend)

    notes = []
    if view.routine_count:
        notes.append(f"{view.routine_count} routine event(s) hidden (use --show-routine)")
    if view.hidden_lane_count:
        notes.append(f"{view.hidden_lane_count} resource(s) idle in this window")
    if notes:
        console.print(Text("  |  ".join(notes), style="dim"))
    console.print()


def render_resource_events(events: list[TimelineEvent], console: Console, title: str) -> None:
    """Event log for one drilled-into resource, oldest first."""
    if not events:
        console.print(f"[dim]No events recorded for {title}.[/dim]")
        return

    table = Table(title=f"Events for {title}", box=None, padding=(0, 2), title_style="bold")
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("", no_wrap=True)
    table.add_column("Id", style="dim")
    table.add_column("Reason")
    table.add_column("Message")
    for event in events:
        glyph, style = event_marker(event)
        table.add_row(
            event.timestamp.strftime("%m-%d %H:%M:%S"),
            Text(glyph, style=style),
            event.id,
            event.reason or (event.operation.value if event.operation else ""),
            event.diff_summary or event.message,
        )
    console.print()
    console.print(table)


def render_event_detail(event: TimelineEvent, console: Console) -> None:
    """Render the detail panel for a selected event."""
    c = classify(event)
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("field", style="bold")
    table.add_column("value")

    table.add_row("Resource", Text(str(event.ref), style="cyan"))
    table.add_row("Time", event.timestamp.strftime("%Y-%m-%d %H:%M:%S UTC"))
    table.add_row("Category", event.category.value)
    if event.operation:
        table.add_row("Operation", event.operation.value)
    if event.event_type:
        style = "bold yellow" if event.event_type == "Warning" else ""
        table.add_row("Type", Text(event.event_type, style=style))
    if event.reason:
        table.add_row("Reason", event.reason)
    if event.message:
        table.add_row("Message", event.message)
    if event.health_state:
        table.add_row("Health", Text(event.health_state.value, style=event.health_state.rich_style))
    if event.owner:
        table.add_row("Owner", f"{event.owner.kind}/{event.owner.name}")
    if event.diff_summary:
        table.add_row("Change", event.diff_summary)
    if event.count > 1:
        table.add_row("Count", str(event.count))
    if c.issue_category:
        table.add_row("Issue", c.issue_category.value)

    color = "red" if c.is_problematic else "blue"
    console.print(Panel(table, title=f"[bold]Event {event.id}[/bold]", border_style=color))
