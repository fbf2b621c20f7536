#!/usr/bin/env python3
"""
OKX Ticker - terminal viewer.

Shows the configured OKX instruments in a small live panel: one line per
instrument in row mode, or a single rotating line in carousel mode.
"""

import argparse
import asyncio
import logging
import signal
import time
from datetime import datetime
from typing import List, Optional

from rich import box
from rich.console import Console, Group
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from okx_ticker.config import (
    ABBREVIATION_MODES, DISPLAY_MODES, ConfigError, TickerConfig, load_config,
)
from okx_ticker.controller import Controller
from okx_ticker.feed import ConnectionState, FeedStatus

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 0.25  # seconds between redraws

STATE_STYLES = {
    ConnectionState.SUBSCRIBED: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.DISCONNECTED: "red",
    ConnectionState.CLOSING: "dim",
}


class TickerDisplay:
    """Builds the rich renderable for the current controller state."""

    def __init__(self, controller: Controller):
        self.controller = controller
        self.start_time = time.time()

    def _status_text(self, status: Optional[FeedStatus]) -> Text:
        text = Text()
        if status is None:
            text.append("starting", style="yellow")
            return text
        if status.failed:
            text.append("FAILED - restart to retry", style="bold red")
            return text
        text.append(status.state.value, style=STATE_STYLES.get(status.state, ""))
        if status.reconnect_attempt:
            text.append(f" (retry {status.reconnect_attempt})", style="yellow")
        text.append(f"  msgs: {status.message_count:,}", style="dim")
        return text

    def _header(self) -> Text:
        config = self.controller.config
        runtime = time.time() - self.start_time
        header = Text()
        header.append(" OKX TICKER ", style="bold white on blue")
        header.append(f"  {config.display_mode}", style="cyan")
        header.append("  |  feed: ", style="dim")
        header.append_text(self._status_text(self.controller.feed_status()))
        header.append(f"  |  {int(runtime // 60)}m {int(runtime % 60)}s", style="dim")
        header.append(f"  |  {datetime.now().strftime('%H:%M:%S')}", style="dim")
        return header

    def _slots_table(self) -> Table:
        table = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
        table.add_column("Price", style="bold")
        table.add_column("Updated", style="dim", justify="right")

        slots = self.controller.visible_slots()
        if not slots:
            table.add_row("[yellow]loading...[/]", "")
        for slot in slots:
            style = "yellow" if slot.pending else "bold"
            table.add_row(f"[{style}]{slot.text}[/]", slot.tooltip)
        return table

    def generate_display(self) -> Panel:
        return Panel(
            Group(self._header(), self._slots_table()),
            title="[bold]OKX[/]",
            border_style="blue",
            box=box.ROUNDED,
        )


def build_log_handler(console: Console, log_file: Optional[str] = None) -> logging.Handler:
    """File handler when log_file is given, else a rich handler on the live console."""
    if log_file:
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))
    else:
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    return handler


def setup_logging(console: Console, level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Route logs to a file, or through rich so they print above the live panel."""
    logging.basicConfig(level=level.upper(), handlers=[build_log_handler(console, log_file)],
                        force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="OKX Ticker - live OKX prices in the terminal")
    parser.add_argument("--config", "-c", help="JSON settings file")
    parser.add_argument(
        "--pairs", "-p",
        help="Comma-separated instrument ids (default: BTC-USDT-SWAP,ETH-USDT-SWAP)"
    )
    parser.add_argument("--mode", "-m", choices=DISPLAY_MODES, help="Display mode (default: row)")
    parser.add_argument(
        "--interval", "-i", type=int,
        help="Carousel rotation interval in milliseconds (default: 5000)"
    )
    parser.add_argument(
        "--abbreviation", "-a", choices=ABBREVIATION_MODES,
        help="Show short labels such as BTC instead of BTC-USDT-SWAP"
    )
    parser.add_argument(
        "--refresh", type=int,
        help="Re-fetch REST snapshots every N milliseconds (default: 0, off)"
    )
    parser.add_argument(
        "--log-level", default="INFO", type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )
    parser.add_argument("--log-file", help="Write logs to this file instead of the console")
    return parser


def resolve_config(args: argparse.Namespace) -> TickerConfig:
    config = load_config(args.config)
    return config.with_overrides(
        pairs=args.pairs,
        display_mode=args.mode,
        carousel_interval_ms=args.interval,
        abbreviation=args.abbreviation,
        snapshot_refresh_ms=args.refresh,
    )


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))


async def run(config: TickerConfig, console: Console) -> None:
    """Run one ticker session until SIGINT/SIGTERM."""
    def on_feed_failed():
        console.print("[bold red]Price feed connection lost after repeated retries. "
                      "Restart the ticker to try again.[/]")

    controller = Controller(config, on_terminal_failure=on_feed_failed)
    display = TickerDisplay(controller)
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    controller.start()
    try:
        with Live(display.generate_display(), console=console, refresh_per_second=4) as live:
            while not stop_event.is_set():
                live.update(display.generate_display())
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=REFRESH_INTERVAL)
                except asyncio.TimeoutError:
                    pass
    finally:
        console.print("\n[yellow]Shutting down...[/]")
        await controller.stop()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    console = Console()
    setup_logging(console, args.log_level, args.log_file)

    try:
        config = resolve_config(args)
    except (ConfigError, OSError, ValueError) as e:
        parser.error(str(e))

    console.print("\n[bold blue]OKX Ticker[/]")
    console.print(f"Tracking {', '.join(config.pairs)} ({config.display_mode} mode)\n")

    try:
        asyncio.run(run(config, console))
    except KeyboardInterrupt:
        pass

    console.print("[green]Goodbye![/]")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
