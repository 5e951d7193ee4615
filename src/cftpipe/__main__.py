"""CLI entry point for cftpipe.

Usage:
    cftpipe setup                     # create tunnel, pick domain
    cftpipe run [-p PORT] [-s SLUG] [-r] [PORT]
    cftpipe destroy <slug>
    cftpipe list
    cftpipe status
"""

from __future__ import annotations

import logging
import os
import sys

from cftpipe import __version__
from cftpipe.commands import (
    PROG,
    destroy_command,
    list_command,
    parse_destroy_args,
    parse_run_args,
    require_config,
    run_command,
    setup_command,
    status_command,
)
from cftpipe.console import print_error
from cftpipe.constants import ENV_LOG_LEVEL
from cftpipe.exceptions import CftpipeError
from cftpipe.state import StateStore

logger = logging.getLogger(__name__)

USAGE = f"Usage: {PROG} {{setup|run|destroy <slug>|list|status}}"

_HELP = f"""\
{USAGE}

Commands:
  setup            Create a tunnel and choose the root domain
  run              Start a tunnel for the current directory (default)
                     -p, --port N     local port (auto-detected if omitted)
                     -s, --name SLUG  subdomain label
                     -r, --reuse      reuse this directory's last hostname
  destroy <slug>   Delete <slug>'s DNS record, optionally the tunnel
  list             Show the 20 most recent sessions
  status           Show the saved tunnel configuration

Environment:
  CF_API_TOKEN        Cloudflare API token (required)
  CF_ACCOUNT_ID       Cloudflare account id (prompted during setup if unset)
  CFTPIPE_CONFIG_DIR  State directory (default: ~/.cloudflared)
  CFTPIPE_LOG_LEVEL   Logging level (default: WARNING)
"""


def _configure_logging() -> None:
    level_name = os.environ.get(ENV_LOG_LEVEL, "WARNING").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    """Dispatch a subcommand. Returns the process exit code."""
    argv = sys.argv[1:] if argv is None else list(argv)
    _configure_logging()

    cmd, rest = (argv[0], argv[1:]) if argv else ("run", [])
    logger.debug("Command %s %s", cmd, rest)

    if cmd in ("help", "-h", "--help"):
        print(_HELP, end="")
        return 0
    if cmd == "--version":
        print(f"{PROG} {__version__}")
        return 0

    store = StateStore()
    try:
        if cmd == "setup":
            return setup_command(store)
        if cmd == "run":
            args = parse_run_args(rest)
            return run_command(args, require_config(store.read_config()), store)
        if cmd == "destroy":
            args = parse_destroy_args(rest)
            return destroy_command(args, require_config(store.read_config()))
        if cmd == "list":
            return list_command(store)
        if cmd == "status":
            return status_command(store)
    except CftpipeError as e:
        print_error(str(e))
        return 1
    except KeyboardInterrupt:
        print()
        return 130
    except SystemExit as e:
        # argparse --help and Ctrl+C inside prompts
        return e.code if isinstance(e.code, int) else 0

    print_error(f"Unknown command '{cmd}'")
    print(USAGE, file=sys.stderr)
    return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
