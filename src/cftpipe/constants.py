"""Shared constants used across cftpipe modules."""

from __future__ import annotations

from pathlib import Path

# State lives next to cloudflared's own files
DEFAULT_CONFIG_DIR = Path.home() / ".cloudflared"
CONFIG_FILENAME = "tunnel-config.json"
HISTORY_FILENAME = "tunnel-history.json"

HISTORY_LIMIT = 100
LIST_LIMIT = 20

# Environment variables
ENV_API_TOKEN = "CF_API_TOKEN"
ENV_ACCOUNT_ID = "CF_ACCOUNT_ID"
ENV_CONFIG_DIR = "CFTPIPE_CONFIG_DIR"
ENV_LOG_LEVEL = "CFTPIPE_LOG_LEVEL"

# Cloudflare API
CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
REQUEST_TIMEOUT = 30
TUNNEL_TARGET_SUFFIX = "cfargotunnel.com"
TUNNEL_NAME_PREFIX = "cftpipe"

# Common dev-server ports, in priority order
CANDIDATE_PORTS: tuple[int, ...] = (
    3000,
    3001,
    3002,
    3003,
    8000,
    8080,
    5000,
    5173,
    5174,
    4321,
    4322,
    24678,
    4173,
    6006,
    7000,
    9000,
    9001,
)
DEFAULT_PORT = 3000

SETUP_SLUG = "setup"
NO_PORT = "N/A"
