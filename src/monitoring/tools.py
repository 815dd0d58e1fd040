#src/monitoring/tools.py
"""
Human-facing utilities for the monitoring log.

Provides:

- Event loader:
    - Load MonitoringEvents back from the JSONL file JsonFileLogger writes.

- Run summary:
    - Count approved transitions per edge and rejected transitions.
    - Count recovery attempts per failure kind and outcome.
    - Collect shutdowns and failed actions.

- Rendering:
    - Print the summary as rich tables.

CLI:
    python -m monitoring.tools --path logs/monitoring/events.log
"""

from __future__ import annotations

import argparse
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from rich.console import Console
from rich.table import Table

from .events import EventType, MonitoringEvent


log = logging.getLogger(__name__)


# ============================================================
# Event loader
# ============================================================

def load_monitoring_events(path: Path) -> List[MonitoringEvent]:
    """
    Load MonitoringEvents from a JSONL file produced by JsonFileLogger.

    Blank lines are ignored; malformed lines and unknown event types are
    counted in the log and skipped.
    """
    if not path.exists():
        return []

    events: List[MonitoringEvent] = []
    skipped = 0
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(MonitoringEvent.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, TypeError, AttributeError, ValueError):
                skipped += 1
    if skipped:
        log.warning("Skipped %d unreadable line(s) in %s", skipped, path)
    return events


# ============================================================
# Run summary
# ============================================================

@dataclass
class RunSummary:
    """Aggregate view of one monitoring log."""

    event_count: int = 0
    transitions: Counter = field(default_factory=Counter)     # (from, to) -> n
    rejections: Counter = field(default_factory=Counter)      # (from, to) -> n
    recoveries: Counter = field(default_factory=Counter)      # (kind, outcome) -> n
    action_failures: Counter = field(default_factory=Counter) # (action, code) -> n
    shutdowns: List[str] = field(default_factory=list)
    last_state: Optional[str] = None


def summarize_events(events: Iterable[MonitoringEvent]) -> RunSummary:
    summary = RunSummary()
    for event in events:
        summary.event_count += 1
        payload = event.payload
        et = event.event_type

        if et == EventType.STATE_TRANSITION:
            edge = (payload.get("from", "?"), payload.get("to", "?"))
            summary.transitions[edge] += 1
            summary.last_state = edge[1]

        elif et == EventType.TRANSITION_REJECTED:
            summary.rejections[(payload.get("from", "?"), payload.get("to", "?"))] += 1

        elif et == EventType.RECOVERY_ATTEMPTED:
            summary.recoveries[(payload.get("kind", "?"), payload.get("outcome", "?"))] += 1

        elif et == EventType.ACTION_EXECUTED and payload.get("success") is False:
            summary.action_failures[(payload.get("action_name", "?"), payload.get("error", "?"))] += 1

        elif et == EventType.SHUTDOWN:
            summary.shutdowns.append(event.message)

    return summary


# ============================================================
# Rendering
# ============================================================

def _counter_table(title: str, columns: Tuple[str, str], counter: Counter) -> Table:
    table = Table(title=title)
    table.add_column(columns[0])
    table.add_column(columns[1])
    table.add_column("Count", justify="right")
    for (left, right), count in sorted(counter.items(), key=lambda kv: (-kv[1], kv[0])):
        table.add_row(str(left), str(right), str(count))
    return table


def render_summary(summary: RunSummary, console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print(f"[bold]Events:[/bold] {summary.event_count}   "
                  f"[bold]Last state:[/bold] {summary.last_state or '-'}")
    console.print(_counter_table("Transitions", ("From", "To"), summary.transitions))
    if summary.rejections:
        console.print(_counter_table("Rejected transitions", ("From", "To"), summary.rejections))
    if summary.recoveries:
        console.print(_counter_table("Recovery attempts", ("Kind", "Outcome"), summary.recoveries))
    if summary.action_failures:
        console.print(_counter_table("Failed actions", ("Action", "Code"), summary.action_failures))
    for message in summary.shutdowns:
        console.print(f"[bold red]SHUTDOWN[/bold red] {message}")


# ============================================================
# CLI
# ============================================================

def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Summarize a miner monitoring log (JSONL) as tables.",
    )
    parser.add_argument(
        "--path",
        type=Path,
        default=Path("logs") / "monitoring" / "events.log",
        help="Path to the JSONL monitoring log",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    events = load_monitoring_events(args.path)
    if not events:
        print(f"No events found in {args.path}")
        return 1
    render_summary(summarize_events(events))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
