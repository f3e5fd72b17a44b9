"""Allow running with ``python -m capture``.

Subcommands
-----------
- ``python -m capture``                  → start the WebSocket capture server (default)
- ``python -m capture init-env``         → generate ``.env`` with default settings
- ``python -m capture init-env --force`` → overwrite existing ``.env``
- ``python -m capture inspect FILE...``  → print capture file headers
"""

import sys


def _run_server() -> None:
    """Start the capture server (hot path, no typer import)."""
    import asyncio

    from capture.server import main

    asyncio.run(main())


def _run_cli() -> None:
    """Dispatch to the typer CLI app (only imported when needed)."""
    from capture.cli import app

    app()


_cli_commands = {"init-env", "inspect"}
if len(sys.argv) > 1 and sys.argv[1] in _cli_commands:
    _run_cli()
else:
    _run_server()
