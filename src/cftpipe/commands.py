"""Command handlers: setup, run, destroy, list and status.

Each handler gets its inputs explicitly (state store, loaded configuration,
parsed arguments, environment) and returns a process exit code. Fatal
conditions are raised as ``CftpipeError`` subclasses for the dispatcher to
report.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import platform
import shutil
import subprocess
import time
from pathlib import Path
from typing import Mapping

from cftpipe.cloudflare import CloudflareClient
from cftpipe.console import (
    print_banner,
    print_info,
    print_success,
    print_warning,
    prompt_index,
    prompt_string,
    prompt_yes_no,
)
from cftpipe.constants import (
    ENV_ACCOUNT_ID,
    ENV_API_TOKEN,
    LIST_LIMIT,
    NO_PORT,
    SETUP_SLUG,
    TUNNEL_NAME_PREFIX,
)
from cftpipe.exceptions import PreconditionError
from cftpipe.ports import detect_port
from cftpipe.slug import generate_slug, is_valid_slug, normalize_slug, slug_from_hostname
from cftpipe.state import Configuration, HistoryEntry, StateStore, utcnow

logger = logging.getLogger(__name__)

PROG = "cftpipe"

# ---------------------------------------------------------------------------
# Prerequisite checks
# ---------------------------------------------------------------------------


def _check_cloudflared() -> str | None:
    """Return path to cloudflared if found, else None."""
    return shutil.which("cloudflared")


def _detect_os() -> str:
    """Detect OS for install instructions."""
    system = platform.system()
    if system == "Darwin":
        return "macos"
    if system == "Linux":
        if shutil.which("apt") is not None:
            return "linux-deb"
        return "linux-other"
    return "other"


def _install_cloudflared_instructions() -> str:
    """Return OS-specific install instructions."""
    os_type = _detect_os()
    if os_type == "macos":
        return "Install cloudflared:\n  brew install cloudflared"
    if os_type == "linux-deb":
        return (
            "Install cloudflared:\n"
            "  curl -fsSL https://pkg.cloudflare.com/cloudflare-main.gpg "
            "| sudo tee /usr/share/keyrings/cloudflare-main.gpg >/dev/null\n"
            "  echo 'deb [signed-by=/usr/share/keyrings/cloudflare-main.gpg] "
            "https://pkg.cloudflare.com/cloudflared '$(lsb_release -cs)' main' "
            "| sudo tee /etc/apt/sources.list.d/cloudflared.list\n"
            "  sudo apt update && sudo apt install cloudflared"
        )
    return (
        "Download cloudflared from:\n"
        "  https://developers.cloudflare.com/cloudflare-one/connections/connect-networks/downloads/"
    )


def require_cloudflared() -> str:
    path = _check_cloudflared()
    if path is None:
        raise PreconditionError(
            f"Missing: cloudflared\n{_install_cloudflared_instructions()}"
        )
    return path


def require_api_token(env: Mapping[str, str]) -> str:
    token = env.get(ENV_API_TOKEN, "").strip()
    if not token:
        raise PreconditionError(f"Set {ENV_API_TOKEN} env var or export it")
    return token


def require_config(config: Configuration | None) -> Configuration:
    if config is None:
        raise PreconditionError(f"Run setup first: {PROG} setup")
    return config


def _validate_port(value: str | int) -> str:
    """Return *value* as a port string, or raise ``PreconditionError``."""
    text = str(value).strip()
    if not text:
        raise PreconditionError("Port not specified/detected")
    if not text.isdigit() or not 1 <= int(text) <= 65535:
        raise PreconditionError(f"Port must be between 1 and 65535, got {text!r}")
    return str(int(text))


def _validate_slug(slug: str) -> str:
    slug = normalize_slug(slug)
    if not is_valid_slug(slug):
        raise PreconditionError(
            f"Invalid name {slug!r}: use letters, digits and hyphens "
            "(max 63, no leading/trailing hyphen)"
        )
    return slug


# ---------------------------------------------------------------------------
# Tunnel daemon
# ---------------------------------------------------------------------------


def _kill_proc(proc: subprocess.Popen) -> None:
    """Terminate a process cleanly, avoiding zombies."""
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def _tunnel_command(port: str) -> list[str]:
    return ["cloudflared", "tunnel", "run", "--url", f"http://localhost:{port}"]


def launch_tunnel(token: str, port: str) -> int:
    """Run cloudflared in the foreground until it exits. Returns its exit code.

    The run token is passed through ``TUNNEL_TOKEN`` so it stays out of the
    process list. stdio is inherited.
    """
    env = {**os.environ, "TUNNEL_TOKEN": token}
    proc = subprocess.Popen(_tunnel_command(port), env=env)
    try:
        return proc.wait()
    except KeyboardInterrupt:
        print("\nShutting down...")
        _kill_proc(proc)
        return 130


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


class _ArgumentParser(argparse.ArgumentParser):
    """Report usage errors as ``PreconditionError`` instead of exiting 2."""

    def error(self, message: str):  # type: ignore[override]
        raise PreconditionError(f"{self.prog}: {message}")


def parse_run_args(argv: list[str]) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog=f"{PROG} run",
        description="Expose a local port on <slug>.<domain> through the tunnel.",
    )
    parser.add_argument("-p", "--port", help="Local port (default: auto-detect)")
    parser.add_argument("-s", "--name", dest="slug", help="Subdomain label to use")
    parser.add_argument(
        "-r",
        "--reuse",
        action="store_true",
        help="Reuse the last hostname recorded for this directory",
    )
    parser.add_argument("port_arg", nargs="?", metavar="PORT", help="Local port")
    return parser.parse_args(argv)


def parse_destroy_args(argv: list[str]) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog=f"{PROG} destroy",
        description="Delete the CNAME for <slug>.<domain>, optionally the tunnel.",
    )
    parser.add_argument("slug", nargs="?", help="Subdomain label to remove")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# setup
# ---------------------------------------------------------------------------


def setup_command(
    store: StateStore,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> int:
    """Pick a zone, create a tunnel and save the configuration."""
    env = os.environ if env is None else env
    require_cloudflared()
    print_banner()
    print_info("Initial Setup\n")
    api_token = require_api_token(env)

    account_id = env.get(ENV_ACCOUNT_ID, "").strip() or prompt_string("Account ID")
    if not account_id:
        raise PreconditionError(
            f"Account ID is required (set {ENV_ACCOUNT_ID} or enter it when asked)"
        )

    client = CloudflareClient(api_token)
    zones = client.list_active_zones()
    if not zones:
        raise PreconditionError("No active zones found for this API token")

    print("\nDomains:")
    idx = prompt_index("Select domain number:", [z.name for z in zones])
    domain = zones[idx].name
    zone_id = client.zone_id_for(domain, zones)
    if not zone_id:
        raise PreconditionError(f"Could not resolve zone id for {domain}")

    tunnel_name = f"{TUNNEL_NAME_PREFIX}-{int(time.time())}"
    print_info(f"Creating tunnel {tunnel_name} ...")
    tunnel = client.create_tunnel(account_id, tunnel_name)

    config = Configuration(
        domain=domain,
        zone_id=zone_id,
        tunnel_id=tunnel.id,
        tunnel_name=tunnel.name,
        token=tunnel.token,
        created_at=utcnow(),
    )
    path = store.write_config(config)
    logger.debug("Saved configuration to %s", path)

    directory = cwd or Path.cwd()
    store.append_history(
        HistoryEntry.create(directory, config.hostname_for(SETUP_SLUG), NO_PORT)
    )

    print_success(f"Setup complete. Run: {PROG} run")
    return 0


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


def _resolve_slug(
    args: argparse.Namespace, store: StateStore, directory: Path
) -> str:
    if args.slug:
        return _validate_slug(args.slug)
    if args.reuse:
        hostname = store.find_last_by_directory(directory)
        if hostname:
            slug = slug_from_hostname(hostname)
            if slug:
                print_info(f"Reusing {hostname}")
                return slug
        print_info("No previous hostname for this directory; generating a new one")
    return generate_slug(directory.name)


def run_command(
    args: argparse.Namespace,
    config: Configuration,
    store: StateStore,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> int:
    """Ensure a CNAME for the session hostname, then run cloudflared."""
    env = os.environ if env is None else env
    require_cloudflared()
    directory = cwd or Path.cwd()

    raw_port = args.port or args.port_arg
    port = _validate_port(raw_port if raw_port else detect_port())
    slug = _resolve_slug(args, store, directory)
    hostname = config.hostname_for(slug)

    api_token = require_api_token(env)
    client = CloudflareClient(api_token)
    if client.find_cname_record(config.zone_id, hostname) is None:
        print_info(f"Creating CNAME {hostname} -> {config.tunnel_target}")
        client.create_cname(config.zone_id, hostname, config.tunnel_target, proxied=True)
    else:
        print_info("CNAME already exists")

    store.append_history(HistoryEntry.create(directory, hostname, port))

    if not config.token:
        raise PreconditionError("No tunnel token in config")

    print_success(f"https://{hostname} -> http://localhost:{port}")
    print_info("Starting cloudflared ...")
    return launch_tunnel(config.token, port)


# ---------------------------------------------------------------------------
# destroy
# ---------------------------------------------------------------------------


def destroy_command(
    args: argparse.Namespace,
    config: Configuration,
    env: Mapping[str, str] | None = None,
) -> int:
    """Delete the CNAME for a slug and, if confirmed, the whole tunnel."""
    env = os.environ if env is None else env
    require_cloudflared()
    if not args.slug:
        raise PreconditionError(f"Usage: {PROG} destroy <slug>")
    slug = _validate_slug(args.slug)
    if not config.domain or not config.zone_id:
        raise PreconditionError("Config broken: domain or zone_id missing")

    hostname = config.hostname_for(slug)
    api_token = require_api_token(env)
    client = CloudflareClient(api_token)

    record_id = client.find_cname_record(config.zone_id, hostname)
    if record_id:
        client.delete_dns_record(config.zone_id, record_id)
        print_success(f"Deleted CNAME {hostname}")
    else:
        print_warning(f"CNAME {hostname} not found")

    if not config.tunnel_id:
        return 0

    # Every hostname ever routed to this tunnel stops working
    if prompt_yes_no(f"Delete tunnel {config.tunnel_id} too?", default=False):
        account_id = client.account_id_from_zone(config.zone_id)
        client.delete_tunnel(account_id, config.tunnel_id)
        print_success(f"Deleted tunnel {config.tunnel_id}")
        print_info(f"Run '{PROG} setup' to create a new tunnel.")
    return 0


# ---------------------------------------------------------------------------
# list / status
# ---------------------------------------------------------------------------


def list_command(store: StateStore, limit: int = LIST_LIMIT) -> int:
    entries = store.read_history(limit)
    if not entries:
        print("No history")
        return 0
    for entry in entries:
        print(entry.format_line())
    return 0


def status_command(store: StateStore) -> int:
    data = store.status()
    if data is None:
        print("No config")
        return 0
    print(json.dumps(data, indent=2))
    return 0
