"""Terminal dashboard using Rich. Shows server totals, rates and the connection table."""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Optional, TextIO

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from natstop import __version__
from natstop.config import DisplayOptions
from natstop.dashboard.formatting import connection_headers, connection_row
from natstop.dashboard.keyboard import KeyboardHandler
from natstop.dashboard.text import header_lines
from natstop.engine.scheduler import StatsScheduler
from natstop.metrics import Stats


log = logging.getLogger(__name__)


# How often the UI looks at the latest slot and polls the keyboard.
# Independent of the fetch delay so keys stay responsive.
UI_TICK_SECONDS = 0.5

_HELP = "  q quit  |  space rates/totals  |  s subscriptions  |  d dns lookup  |  b raw bytes"


def _on_off(flag: bool) -> str:
    return "[green]on[/green]" if flag else "[dim]off[/dim]"


def _build_header(stats: Stats, display: DisplayOptions) -> Text:
    lines = header_lines(stats, display)
    header = Text(lines[0], style="bold")
    for line in lines[1:]:
        header.append("\n" + line)
    return header


def _build_table(stats: Stats, display: DisplayOptions) -> Table:
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=None,
        expand=True,
        padding=(0, 1),
    )
    for name in connection_headers(display):
        justify = "left" if name in ("HOST", "NAME", "LANG", "VERSION", "SUBSCRIPTIONS") else "right"
        table.add_column(name, no_wrap=True, justify=justify)

    for conn in stats.connz.connections:
        table.add_row(*connection_row(conn, stats.rates, display))
    return table


def build_display(
    stats: Stats,
    display: DisplayOptions,
    stale: Optional[Stats] = None,
    source_name: str = "",
) -> RenderableType:
    """
    Render one Stats. On a failed cycle the error is shown as a banner on
    top of `stale` (the last good cycle) when there is one.
    """
    parts = []

    title = Text(f"  natstop v{__version__}", style="bold white on blue")
    if source_name:
        title.append(f"  |  {source_name}", style="bold white on blue")
    parts.append(title)

    shown = stats
    if stats.error:
        banner = Text(f"  {stats.error}", style="bold red")
        if stale is not None:
            shown = stale
            banner.append("\n  Showing last good data", style="dim")
        parts.append(Panel(banner, title="Error", border_style="red"))

    parts.append(_build_header(shown, display))
    parts.append(Text(""))
    parts.append(_build_table(shown, display))

    if shown.rates is None and display.show_rates:
        parts.append(Text("  No rate data yet, waiting for a second successful poll", style="dim"))

    status = Text.from_markup(
        f"  rates {_on_off(display.show_rates)}  subs {_on_off(display.display_subs)}"
        f"  dns {_on_off(display.lookup_dns)}  raw {_on_off(display.raw_bytes)}"
    )
    parts.append(Text(""))
    parts.append(status)
    parts.append(Text(_HELP, style="dim"))

    return Group(*parts)


def run_dashboard(
    scheduler: StatsScheduler,
    display: DisplayOptions,
    max_refreshes: Optional[int] = None,
    console: Optional[Console] = None,
    keyboard: Optional[KeyboardHandler] = None,
    screen: bool = True,
):
    """
    Interactive loop. Starts the scheduler, redraws whenever a new Stats is
    published or a key toggles a flag, and stops the scheduler on exit.
    """
    console = console or Console()
    keyboard = keyboard or KeyboardHandler()
    source_name = scheduler.engine.source.name()

    log.info("Starting dashboard: source=%s, delay=%.1fs", source_name, scheduler.delay)

    scheduler.start()
    refreshes = 0
    last_rendered: Optional[Stats] = None
    dirty = False
    limit_reached = False

    try:
        with keyboard as keys, Live(console=console, auto_refresh=False, screen=screen) as live:
            live.update(Text(f"  Connecting to {source_name}...", style="dim"), refresh=True)

            while True:
                stats = scheduler.latest
                # Nothing published yet on the very first ticks
                if stats is not None and (stats is not last_rendered or dirty):
                    live.update(
                        build_display(stats, display, stale=scheduler.last_good, source_name=source_name),
                        refresh=True,
                    )
                    if stats is not last_rendered:
                        last_rendered = stats
                        refreshes += 1
                    dirty = False

                    if max_refreshes and refreshes >= max_refreshes:
                        limit_reached = True
                        break

                key = keys.wait_key(UI_TICK_SECONDS)
                if key is not None:
                    if not display.handle_key(key):
                        break
                    dirty = True
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()

    if limit_reached and screen:
        # Leaving the alternate screen wipes the last frame, so redraw it
        console.print(build_display(last_rendered, display, stale=scheduler.last_good, source_name=source_name))

    console.print(f"\n[dim]Dashboard stopped. {scheduler.cycles} polls, {refreshes} refreshes.[/dim]")
    return refreshes


def run_jsonl(
    scheduler: StatsScheduler,
    max_refreshes: Optional[int] = None,
    stream: Optional[TextIO] = None,
):
    """Non-interactive output mode: one JSON object per cycle per line.

    For pipes, CI and log aggregators where a Rich TUI isn't available.
    """
    stream = stream or sys.stdout
    source_name = scheduler.engine.source.name()
    log.info("Starting JSONL output: source=%s, delay=%.1fs", source_name, scheduler.delay)

    scheduler.start()
    written = 0
    last_written: Optional[Stats] = None

    try:
        while True:
            # Read is_running first so a final publish is never missed
            running = scheduler.is_running
            stats = scheduler.latest
            if stats is not None and stats is not last_written:
                record = stats.to_dict()
                record["source"] = source_name
                stream.write(json.dumps(record) + "\n")
                stream.flush()
                last_written = stats
                written += 1
                if max_refreshes and written >= max_refreshes:
                    break
                continue

            if not running:
                # Scheduler hit its own cycle limit
                break
            time.sleep(UI_TICK_SECONDS)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()

    return written
