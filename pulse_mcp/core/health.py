"""
Startup health checks with actionable troubleshooting hints.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import ConfigurationError


DEFAULT_HEALTH_CHECK_TIMEOUT = 10000
MAX_HEALTH_CHECK_TIMEOUT = 300000


def parse_health_check_timeout(value: Optional[str],
                               logger: Optional[logging.Logger] = None) -> int:
    """Parse HEALTH_CHECK_TIMEOUT in milliseconds, falling back to the default when invalid"""
    if value is None or not value.strip():
        return DEFAULT_HEALTH_CHECK_TIMEOUT

    try:
        parsed = int(value.strip())
    except ValueError:
        parsed = None

    if parsed is None or parsed <= 0 or parsed > MAX_HEALTH_CHECK_TIMEOUT:
        if logger:
            logger.warning(
                f'Invalid HEALTH_CHECK_TIMEOUT "{value}", must be a positive integer up to '
                f'{MAX_HEALTH_CHECK_TIMEOUT}. Using default of {DEFAULT_HEALTH_CHECK_TIMEOUT}ms'
            )
        return DEFAULT_HEALTH_CHECK_TIMEOUT

    return parsed


def get_error_hint(message: str, timeout_ms: int, subject: str = "the server") -> str:
    """Return a troubleshooting hint for a connection error message, or an empty string"""
    lowered = message.lower()

    if any(marker in lowered for marker in ("401", "403", "unauthorized", "forbidden", "authentication")):
        return f"\nHint: Check that the credentials for {subject} are correct and have not expired."
    if "timed out" in lowered or "timeout" in lowered:
        return (
            f"\nHint: {subject} did not respond within {timeout_ms}ms. "
            "Check network connectivity or raise HEALTH_CHECK_TIMEOUT."
        )
    if "econnrefused" in lowered or "connection refused" in lowered:
        return f"\nHint: Connection to {subject} was refused. Check the host and port."
    if any(marker in lowered for marker in ("enotfound", "getaddrinfo", "name or service not known",
                                            "name resolution", "nodename nor servname")):
        return f"\nHint: The hostname for {subject} could not be resolved. Check the configured host."
    if any(marker in lowered for marker in ("econnreset", "ehostunreach", "enetunreach",
                                            "connection reset", "no route to host",
                                            "network is unreachable")):
        return f"\nHint: The network path to {subject} is unavailable. Check VPN or firewall settings."
    if "invalid url" in lowered:
        return f"\nHint: The configured URL for {subject} is malformed."
    return ""


async def run_health_check(check: Callable[[], Awaitable[object]], timeout_ms: int,
                           subject: str, logger: Optional[logging.Logger] = None) -> None:
    """Run a connectivity check, raising ConfigurationError with a hint on failure"""
    try:
        await asyncio.wait_for(check(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        message = f"Health check timed out after {timeout_ms}ms"
        raise ConfigurationError(
            f"Health check failed: {message}{get_error_hint(message, timeout_ms, subject)}"
        )
    except ConfigurationError:
        raise
    except Exception as e:
        message = str(e) or e.__class__.__name__
        if logger:
            logger.error(f"Health check for {subject} failed: {message}")
        raise ConfigurationError(
            f"Health check failed: {message}{get_error_hint(message, timeout_ms, subject)}"
        ) from e

    if logger:
        logger.info(f"Health check for {subject} passed")
