import os

from dotenv import load_dotenv

# Configuration for the competitor monitor.
# Network cadence, request headers, worker pool size and DB settings.
# Every value can be overridden from the environment (or a .env file).

load_dotenv()


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Network timeout for GET requests (seconds)
REQUEST_TIMEOUT = _env_float("MONITOR_REQUEST_TIMEOUT", 30.0)

# Timeout for the cheap HEAD existence probes (seconds)
PROBE_TIMEOUT = _env_float("MONITOR_PROBE_TIMEOUT", 10.0)

# Minimum gap between two requests to the same host (seconds), never below 1s
REQUEST_DELAY_SECONDS = max(1.0, _env_float("MONITOR_REQUEST_DELAY", 1.0))

MAX_REDIRECTS = _env_int("MONITOR_MAX_REDIRECTS", 3)

# Browser-like headers; many agency sites reject unknown bots
USER_AGENT = os.getenv(
    "MONITOR_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
)
ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
ACCEPT_LANGUAGE = os.getenv("MONITOR_ACCEPT_LANGUAGE", "cs,en;q=0.5")

# Worker scaling parameters
MAX_WORKERS = max(1, _env_int("MONITOR_MAX_WORKERS", 4))

# Snapshots kept per (target, category) when pruning
SNAPSHOT_RETENTION = max(1, _env_int("MONITOR_SNAPSHOT_RETENTION", 10))

LOG_FILE = os.getenv("MONITOR_LOG_FILE") or None

DB_CONFIG = {
    "host": os.getenv("MYSQL_HOST", "localhost"),
    "port": _env_int("MYSQL_PORT", 3306),
    "user": os.getenv("MYSQL_USER"),
    "password": os.getenv("MYSQL_PASSWORD"),
    "database": os.getenv("MYSQL_DATABASE"),
    "charset": "utf8mb4",
}

# Connections kept by the store pool; concurrent DB operations never exceed it
DB_POOL_SIZE = max(1, _env_int("MYSQL_POOL_SIZE", 5))

# Seconds a worker waits for a free connection before giving up
DB_ACQUIRE_TIMEOUT = _env_float("MYSQL_ACQUIRE_TIMEOUT", 10.0)
