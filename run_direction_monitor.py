#!/usr/bin/env python3
"""
Run the Hourly Direction Monitor
Execute from root directory: python run_direction_monitor.py BTCUSDT
"""

import argparse
import asyncio
import logging
import os
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Add current directory to path so we can import hourly_direction
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from hourly_direction import DirectionTracker, DirectionError, get_config
from hourly_direction.formatter import format_prediction, format_price, format_status

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

console = Console()

STYLE_COLORS = {
    'up': 'bold green',
    'down': 'bold red',
    'abstain': 'bold yellow',
}


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='Hourly Direction Monitor - live UP / DOWN / NO CALL for the current hour'
    )

    parser.add_argument(
        'symbol',
        nargs='?',
        default='BTCUSDT',
        help='Trading pair to monitor (default: BTCUSDT)'
    )

    parser.add_argument(
        '--threshold',
        type=float,
        default=None,
        help='Minimum confidence for a directional call (default: 0.62)'
    )

    parser.add_argument(
        '--finals-only',
        action='store_true',
        help='Only render updates for closed minutes'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args()


def render_update(update, finals_only: bool = False):
    """Print one tracker update as a rich panel"""
    if finals_only and not update.is_final:
        return

    shown = format_prediction(update.prediction)
    status = format_status(update.status, update.precision)

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Price", format_price(update.price, update.precision))
    table.add_row("Hour open", status['hour_open'])
    table.add_row("Prior", status['prior'])
    table.add_row("ATR", status['atr'])
    table.add_row("Last hour", status['last_hour'])
    table.add_row("", shown['confidence'])
    table.add_row("", shown['signals'])

    title = f"{update.symbol} {update.received_at:%H:%M:%S}"
    console.print(Panel(
        table,
        title=f"[{STYLE_COLORS[shown['style']]}]{shown['decision']}[/] {title}",
        expand=False
    ))


async def main():
    args = parse_arguments()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    config = get_config(log_level='DEBUG') if args.debug else get_config()

    tracker = DirectionTracker(
        args.symbol,
        config=config,
        on_update=lambda update: render_update(update, args.finals_only),
        threshold=args.threshold,
    )

    try:
        await tracker.start()
        console.print(f"[bold]Streaming {tracker.symbol} minute klines, Ctrl+C to stop[/bold]")
        await tracker.run()
    except DirectionError as e:
        logger.error(f"Monitor failed: {e}")
        sys.exit(1)
    finally:
        await tracker.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        console.print("\nShutdown requested by user")
