import argparse
import hashlib
import json
import logging
import os
import sys
import threading

try:
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.table import Table
    from rich.panel import Panel
    from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn
    from rich import box
except ImportError:
    print("Error: The 'rich' library is required for the CLI but not installed.", file=sys.stderr)
    print("Please install it with: pip install audiowaveform[cli]", file=sys.stderr)
    sys.exit(1)

from audiowaveformlib import __version__
from audiowaveformlib.cache import WaveformManager
from audiowaveformlib.config import ConfigError, default_config, load_preset, merge_configs
from audiowaveformlib.events import EventBus
from audiowaveformlib.models import WaveformState

console = Console()

SPARK_CHARS = " ▁▂▃▄▅▆▇█"


def positive_int(value):
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return ivalue


def default_cache_dir() -> str:
    base = os.environ.get("XDG_CACHE_HOME") or os.path.join(os.path.expanduser("~"), ".cache")
    return os.path.join(base, "audiowaveform")


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description="Compute and cache loudness waveforms of audio files",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--version", action="version",
                        version=f"audiowaveform {__version__}")
    parser.add_argument("files", nargs="+", help="Audio files to sample")
    parser.add_argument("--cache-dir", default=default_cache_dir(),
                        help="Directory holding the persisted waveforms")
    parser.add_argument("--width", type=positive_int, default=60,
                        help="Number of bars to display per file")
    parser.add_argument("--preset", type=str, default=None,
                        help="JSON preset overriding the default configuration")
    parser.add_argument("--high-priority", action="store_true",
                        help="Queue the files ahead of other pending work")
    parser.add_argument("--json", type=str, default=None,
                        help="Write the normalized levels to this JSON file")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    debug_env = os.environ.get("AUDIOWAVEFORM_DEBUG", "").strip().lower() in ("1", "true")
    logging.basicConfig(
        level=logging.DEBUG if (verbose or debug_env) else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def waveform_identifier(path: str) -> str:
    return hashlib.sha1(os.path.abspath(path).encode("utf-8")).hexdigest()


def sparkline(levels) -> str:
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[int(round(float(v) * top))] for v in levels)


class _Completion:
    """Observer flagging one waveform as done."""

    def __init__(self, on_done):
        self.done = threading.Event()
        self._on_done = on_done

    def __call__(self, waveform):
        self.done.set()
        self._on_done()


# ---------------------------------------------------------------------------
# Main process_files(): thin wrapper around the audiowaveformlib manager
# ---------------------------------------------------------------------------

def process_files(argv=None) -> int:
    args = parse_arguments(argv)
    configure_logging(args.verbose)

    config = default_config()
    if args.preset:
        try:
            config = merge_configs(config, load_preset(args.preset))
        except ConfigError as e:
            console.print(f"[bold red]Error:[/] {e}")
            return 1

    try:
        manager = WaveformManager(config=config, event_bus=EventBus())
    except ConfigError as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 1

    console.print(Panel.fit(
        f"[bold]audiowaveform[/]\n"
        f"Files: [cyan]{len(args.files)}[/] | Points: [cyan]{manager.config['sample_count']}[/]\n"
        f"Range: [cyan]{manager.config['silence_threshold_db']} dB[/] .. "
        f"[cyan]{manager.config['clipping_threshold_db']} dB[/]\n"
        f"Cache: [green]{args.cache_dir}[/]",
        title="Configuration",
    ))

    waveforms = {}
    waiters = []
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Sampling waveforms...", total=len(args.files))

        for path in args.files:
            identifier = waveform_identifier(path)
            waveform_path = os.path.join(args.cache_dir, f"{identifier}.waveform")
            waveform = manager.get_or_build_waveform(
                identifier, path, waveform_path, high_priority=args.high_priority,
            )
            waveforms[path] = waveform
            if waveform is None:
                progress.advance(task_id)
                continue
            waiter = _Completion(lambda: progress.advance(task_id))
            waiters.append(waiter)
            manager.add_completion_observer(waveform, waiter)

        for waiter in waiters:
            waiter.done.wait()

    manager.scheduler.shutdown()

    table = Table(box=box.ROUNDED, title="Waveforms")
    table.add_column("File", style="cyan", max_width=30)
    table.add_column("Points", justify="right", style="dim")
    table.add_column("Waveform")
    table.add_column("Status", justify="right")

    failures = 0
    report = {}
    for path, waveform in waveforms.items():
        name = os.path.basename(path)
        if waveform is None or waveform.state is not WaveformState.COMPLETE:
            failures += 1
            table.add_row(name, "-", "", "[red]ERR[/]")
            report[path] = {"state": "failed", "levels": None}
            continue
        levels = waveform.normalized_levels(args.width)
        table.add_row(name, str(waveform.samples.size), sparkline(levels), "[green]OK[/]")
        report[path] = {
            "identifier": waveform.identifier,
            "state": waveform.state.value,
            "levels": [round(float(v), 4) for v in levels],
        }

    console.print(table)

    if args.json:
        with open(args.json, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=4)
        console.print(f"\n[dim]Levels saved to: {args.json}[/]")

    if failures:
        console.print(f"[bold red]{failures} file(s) could not be sampled.[/]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(process_files())
