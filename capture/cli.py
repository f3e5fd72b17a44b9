"""CLI commands for the capture service.

Provides ``capture-cli init-env`` to generate a ``.env`` file with every
configuration variable, and ``capture-cli inspect`` to check the headers of
written capture files.
"""

from __future__ import annotations

import socket
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from capture.config import CaptureConfig
from capture.wav import HEADER_SIZE, WavFormatError, parse_header

app = typer.Typer(help="PCM capture service CLI utilities.")
console = Console()

# ---------------------------------------------------------------------------
# Root of the repository (parent of the ``capture/`` package)
# ---------------------------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


# ---------------------------------------------------------------------------
# Local IP
# ---------------------------------------------------------------------------


def _get_local_ip() -> str:
    """Return the local network IP address (best-effort)."""
    try:
        # Connect to a public address (no actual traffic) to find the local IP.
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            addr: str = s.getsockname()[0]
            return addr
    except OSError:
        try:
            return socket.gethostbyname(socket.gethostname())
        except socket.gaierror:
            return "127.0.0.1"


# ---------------------------------------------------------------------------
# .env rendering
# ---------------------------------------------------------------------------


def _render_env(*, local_ip: str, output_dir: str, defaults: CaptureConfig) -> str:
    """Render the ``.env`` file contents."""
    return f"""\
# PCM Capture Service: environment configuration
# Generated by: python -m capture init-env
# See capture/config.py for full documentation of each variable.

# --- WebSocket Server ---
# Use 0.0.0.0 to accept clients from other machines.
# Your local IP: {local_ip}. Clients connect to ws://{local_ip}:{defaults.capture_port}{defaults.capture_path}
CAPTURE_HOST={defaults.capture_host}
CAPTURE_PORT={defaults.capture_port}
CAPTURE_PATH={defaults.capture_path}
MAX_FRAME_SIZE={defaults.max_frame_size}

# --- Audio Format (raw little-endian PCM sent by the client) ---
SAMPLE_RATE={defaults.sample_rate}
CHANNELS={defaults.channels}
BITS_PER_SAMPLE={defaults.bits_per_sample}

# --- Storage ---
# Buffered audio is written to a new audio_<epoch-millis>.wav every FLUSH_INTERVAL seconds.
FLUSH_INTERVAL={defaults.flush_interval:g}
OUTPUT_DIR={output_dir}

# --- Logging ---
LOG_LEVEL={defaults.log_level}
"""


# ---------------------------------------------------------------------------
# CLI commands
# ---------------------------------------------------------------------------

_force_option = typer.Option(False, "--force", help="Overwrite an existing .env file.")
_output_dir_option = typer.Option(
    "recordings", "--output-dir", help="Directory capture files are written to."
)
_project_root_option = typer.Option(
    _PROJECT_ROOT,
    "--project-root",
    hidden=True,
    help="Override project root (for testing).",
)
_files_argument = typer.Argument(..., help="Capture files to inspect.")


@app.command()
def init_env(
    force: bool = _force_option,
    output_dir: str = _output_dir_option,
    project_root: Path = _project_root_option,
) -> None:
    """Generate the .env file with default capture settings."""
    env_path = project_root / ".env"

    # --- Guard against overwriting -----------------------------------------------
    if env_path.exists() and not force:
        console.print(
            f"[bold yellow]⚠  {env_path} already exists.[/bold yellow]\n"
            "  Run again with [bold]--force[/bold] to overwrite.",
        )
        raise typer.Exit(code=1)

    defaults = CaptureConfig()
    local_ip = _get_local_ip()

    content = _render_env(local_ip=local_ip, output_dir=output_dir, defaults=defaults)
    env_path.write_text(content, encoding="utf-8")

    rows = [
        f"[bold]File written:[/bold]   {env_path}",
        f"[bold]Local IP:[/bold]       {local_ip}",
        f"[bold]Endpoint:[/bold]       ws://{defaults.capture_host}:{defaults.capture_port}"
        f"{defaults.capture_path}",
        f"[bold]Audio format:[/bold]   {defaults.sample_rate} Hz, {defaults.channels} ch, "
        f"{defaults.bits_per_sample}-bit",
        f"[bold]Flush interval:[/bold] {defaults.flush_interval:g}s",
        f"[bold]Output dir:[/bold]     {output_dir}",
    ]
    console.print(Panel("\n".join(rows), title="init-env summary", border_style="green"))


@app.command()
def inspect(files: list[Path] = _files_argument) -> None:
    """Print the header fields of capture WAV files."""
    table = Table(title="Capture files")
    table.add_column("File", no_wrap=True)
    table.add_column("Format", no_wrap=True)
    table.add_column("Data bytes", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Status")

    failed = False
    for path in files:
        try:
            with path.open("rb") as fh:
                header = parse_header(fh.read(HEADER_SIZE))
            actual_size = path.stat().st_size - HEADER_SIZE
        except (OSError, WavFormatError) as exc:
            failed = True
            table.add_row(str(path), "-", "-", "-", f"[red]{exc}[/red]")
            continue

        fmt = header.audio_format
        status = "[green]ok[/green]"
        if actual_size != header.data_size:
            failed = True
            status = f"[red]truncated: {actual_size} bytes on disk[/red]"
        table.add_row(
            path.name,
            f"{fmt.sample_rate} Hz / {fmt.channels} ch / {fmt.bits_per_sample}-bit",
            str(header.data_size),
            f"{header.duration_seconds:.2f}s",
            status,
        )

    console.print(table)
    if failed:
        raise typer.Exit(code=1)
