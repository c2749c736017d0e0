"""
Tool Call Rate Limiting

This module limits how often a single client may call the launchpad's MCP tools.
Every tool identifies its caller with a ``client_id``; each client gets a fixed
number of calls per 60-second window.

Rate Limiting Algorithm:
- Tracks the request count and the first request timestamp per client
- Resets the counter once the window has expired
- Rejects further calls inside the window once the limit is reached

Memory Management:
- OrderedDict keeps the most recently active clients at the end
- Entries older than the window are cleaned up once the cache grows past
  MAX_TRACKED_CLIENTS

The limit comes from RATE_LIMIT_PER_MINUTE in the configuration.
"""
import time
from typing import Tuple
from collections import OrderedDict

from mcp_launchpad.config import RATE_LIMIT_PER_MINUTE
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60
MAX_TRACKED_CLIENTS = 1000

# {client_id: (count, first_request_timestamp_in_window)}
rate_limit_cache: OrderedDict[str, Tuple[int, int]] = OrderedDict()


def check_rate_limit(client_id: str, limit: int = RATE_LIMIT_PER_MINUTE) -> bool:
    """
    Checks whether ``client_id`` may make another call in the current window.

    Args:
        client_id: Identifier of the calling client.
        limit: Calls allowed per window.

    Returns:
        True if the request is allowed, False if the rate limit is exceeded.
    """
    now = int(time.time())

    if len(rate_limit_cache) > MAX_TRACKED_CLIENTS:
        cleanup_old_entries(now - WINDOW_SECONDS)

    if client_id not in rate_limit_cache:
        rate_limit_cache[client_id] = (1, now)
        logger.debug(f"Rate limit initiated for client: {client_id}")
        return True

    count, timestamp = rate_limit_cache[client_id]
    if now - timestamp >= WINDOW_SECONDS:
        rate_limit_cache[client_id] = (1, now)
        rate_limit_cache.move_to_end(client_id)
        logger.debug(f"Rate limit window reset for client: {client_id}")
        return True

    if count >= limit:
        logger.warning(f"Rate limit exceeded for client: {client_id}. Count: {count}, Limit: {limit}")
        return False

    rate_limit_cache[client_id] = (count + 1, timestamp)
    rate_limit_cache.move_to_end(client_id)
    return True


def cleanup_old_entries(cutoff_time: int) -> int:
    """Removes entries whose window started before ``cutoff_time``; returns how many."""
    expired = [client_id for client_id, (_, timestamp) in rate_limit_cache.items() if timestamp < cutoff_time]
    for client_id in expired:
        del rate_limit_cache[client_id]
    if expired:
        logger.debug(f"Cleaned up {len(expired)} old rate limit entries")
    return len(expired)


def reset() -> None:
    rate_limit_cache.clear()
