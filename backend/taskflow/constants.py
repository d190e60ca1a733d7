"""
Taskflow Global Constants

Centralized location for system-wide constants used by the request
infrastructure layer.
"""

import time

# Application Constants
APP_NAME = "Taskflow"
APP_VERSION = "0.1.0"

# Cache namespace; every key written by CacheManager carries this prefix
CACHE_KEY_PREFIX = "task-mgmt:"
CACHE_KEY_DELIMITER = ":"
DEFAULT_CACHE_TTL_SECONDS = 300

# Performance monitoring
MAX_METRICS = 1000
SLOW_OPERATION_THRESHOLD_MS = 200.0
SLOW_QUERY_THRESHOLD_MS = 100.0
MAX_SLOW_QUERIES = 50
SLOW_QUERY_TEXT_LIMIT = 200
DEFAULT_SUMMARY_WINDOW_MS = 5 * 60 * 1000
MAX_SLOW_OPERATIONS = 10
REALTIME_OPERATIONS = 20

# Request pipeline
MAX_REQUEST_BODY_BYTES = 50 * 1024 * 1024
COMPRESSION_MIN_BYTES = 1024
USER_AGENT_LOG_LIMIT = 100
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH"})
ACCEPTED_CONTENT_TYPES = ("application/json", "multipart/form-data")

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' 'unsafe-eval'; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: blob: https:; "
    "font-src 'self' data:; "
    "connect-src 'self' https:; "
    "frame-ancestors 'none';"
)


def now_ms() -> int:
    """Get current wall-clock time in epoch milliseconds.

    Services take this as their default ``clock`` so tests can swap in a
    deterministic one.
    """
    return int(time.time() * 1000)
