"""
Home Canvas — place a product photo into a scene photo with Gemini.

Usage:
  python -m homecanvas.main product.png scene.jpg --point 50,70
  python -m homecanvas.main product.png scene.jpg --point 12.5,80 --output outputs/ --debug

--point is the drop location as X,Y percentages of the scene (0–100,
measured from the top-left corner). Ctrl+C cancels the running job.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule

from .config import Settings
from .geometry import RelativePoint
from .orchestrator import CompositionOrchestrator
from .session import AppState, CompositionSession

load_dotenv()

console = Console()

OUTPUTS_ROOT = Path("outputs")

STAGE_LABELS = {
    "resizing":   "Resizing product and scene",
    "marking":    "Marking drop point",
    "describing": "Describing the drop location (Gemini)",
    "composing":  "Composing the product into the scene (Gemini)",
    "cropping":   "Cropping back to the scene's aspect ratio",
}


# ── CLI ───────────────────────────────────────────────────────────────────────

def _parse_point(raw: str) -> RelativePoint:
    try:
        x_str, y_str = raw.split(",", 1)
        x, y = float(x_str), float(y_str)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y percentages, got {raw!r}") from None
    # Same clamping the click handler applies
    return RelativePoint.clamped(x, y)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Home Canvas — composite a product into a scene at a chosen point"
    )
    parser.add_argument("product", type=Path, help="Product image (PNG / JPEG / WebP)")
    parser.add_argument("scene", type=Path, help="Scene image (PNG / JPEG / WebP)")
    parser.add_argument(
        "--point",
        type=_parse_point,
        default=RelativePoint(50.0, 50.0),
        help="Drop point as X,Y percentages of the scene (default: 50,50)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output directory (default: HOMECANVAS_OUTPUT_DIR or outputs/)",
    )
    parser.add_argument(
        "--dimension",
        type=int,
        default=None,
        help="Square working size in pixels (default: HOMECANVAS_DIMENSION or 1024)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Also save the marked scene that was sent to the description model",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show library debug logs",
    )
    return parser.parse_args(argv)


# ── Progress display ──────────────────────────────────────────────────────────

class _ProgressPrinter:
    def __init__(self) -> None:
        self._current: Optional[str] = None
        self._t0 = time.time()
        self._step = 0

    def __call__(self, progress: Dict[str, str]) -> None:
        active = next((k for k, v in progress.items() if v == "in-progress"), None)
        if active is None or active == self._current:
            return
        if self._current is not None:
            console.print(f"  [green]✓[/green] [dim]{time.time() - self._t0:.1f}s[/dim]")
        self._current = active
        self._step += 1
        self._t0 = time.time()
        console.print(f"\n[bold]Step {self._step}/{len(STAGE_LABELS)} — {STAGE_LABELS[active]}[/bold]")

    def finish(self) -> None:
        if self._current is not None:
            console.print(f"  [green]✓[/green] [dim]{time.time() - self._t0:.1f}s[/dim]")


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    printer = _ProgressPrinter()
    orchestrator = CompositionOrchestrator.from_settings(settings)
    output_dir = args.output or settings.output_dir or OUTPUTS_ROOT

    with CompositionSession(
        orchestrator,
        output_dir=output_dir,
        on_progress=printer,
        save_debug=args.debug,
    ) as session:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, session.cancel)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; Ctrl+C interrupts instead
            pass

        result = await session.submit_files(args.product, args.scene, args.point)

        if session.state is AppState.IDLE:
            console.print("\n[yellow]Cancelled.[/yellow]")
            return 130

        if session.state is AppState.ERROR:
            console.print(f"\n[bold red]Error:[/bold red] {session.error}")
            if args.debug and session.debug_image is not None:
                Path(output_dir).mkdir(parents=True, exist_ok=True)
                debug_path = Path(output_dir) / f"image-fusion-failed-{int(time.time() * 1000)}-debug.jpeg"
                debug_path.write_bytes(session.debug_image.data)
                console.print(f"  [dim]Debug view saved → {debug_path}[/dim]")
            return 1

        printer.finish()
        location = result.location_description if result else ""
        console.print(
            Panel(
                f"Saved to: [bold]{session.saved_path}[/bold]\n\n"
                f"[dim]Placement:[/dim] {location}",
                title="[bold green]Composite ready[/bold green]",
                border_style="green",
            )
        )
    return 0


def main(argv=None) -> None:
    args = parse_args(argv)
    settings = Settings.from_env(dotenv=False)
    if args.dimension:
        settings.dimension = args.dimension

    logging.basicConfig(
        format="%(asctime)s — %(levelname)s — %(name)s — %(message)s",
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO),
    )

    _check_env(settings)
    for path in (args.product, args.scene):
        if not path.is_file():
            console.print(f"[bold red]Error:[/bold red] {path} not found.")
            sys.exit(1)

    console.print(Rule("[bold magenta]Home Canvas[/bold magenta]"))
    console.print(
        f"  Product: [bold]{args.product.name}[/bold]  |  "
        f"Scene: [bold]{args.scene.name}[/bold]  |  "
        f"Point: [bold]{args.point.x_percent:.1f}%, {args.point.y_percent:.1f}%[/bold]"
    )

    sys.exit(asyncio.run(_run(args, settings)))


def _check_env(settings: Settings) -> None:
    """Check required environment variables."""
    if not settings.api_key:
        console.print("[bold red]Error:[/bold red] GEMINI_API_KEY not set.")
        console.print("Create a .env file from .env.example and add your key.")
        sys.exit(1)


if __name__ == "__main__":
    main()
