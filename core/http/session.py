"""HTTP session management for aiohttp.

One ClientSession is shared by the routing and weather clients. The session
is recreated when the running event loop changes, which happens between
tests and when the replay CLI runs several trips back to back.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from core.constants import (
    HTTP_CONNECTION_LIMIT,
    HTTP_TIMEOUT_CONNECT,
    HTTP_TIMEOUT_SOCK_READ,
    HTTP_TIMEOUT_TOTAL,
    HTTP_USER_AGENT,
)

logger = logging.getLogger(__name__)


class SessionState:
    """State container for the aiohttp session to avoid global variables."""

    session: aiohttp.ClientSession | None = None


async def get_session() -> aiohttp.ClientSession:
    """Get or create the shared aiohttp ClientSession for the running loop."""
    current_loop = asyncio.get_running_loop()

    if SessionState.session is not None:
        stale_loop = SessionState.session.loop
        if stale_loop is not current_loop or stale_loop.is_closed():
            logger.info("Detected event loop change. Creating new HTTP session.")
            if not SessionState.session.closed and not stale_loop.is_closed():
                try:
                    await SessionState.session.close()
                except RuntimeError as e:
                    logger.warning("Error closing stale session: %s", e)
            SessionState.session = None

    if SessionState.session is None or SessionState.session.closed:
        timeout = aiohttp.ClientTimeout(
            total=HTTP_TIMEOUT_TOTAL,
            connect=HTTP_TIMEOUT_CONNECT,
            sock_read=HTTP_TIMEOUT_SOCK_READ,
        )
        connector = aiohttp.TCPConnector(limit=HTTP_CONNECTION_LIMIT)
        SessionState.session = aiohttp.ClientSession(
            timeout=timeout,
            headers={"User-Agent": HTTP_USER_AGENT, "Accept": "application/json"},
            connector=connector,
        )
        logger.debug("Created new aiohttp session")

    return SessionState.session


async def cleanup_session() -> None:
    """Close the shared session."""
    if SessionState.session and not SessionState.session.closed:
        await SessionState.session.close()
        logger.info("Closed shared HTTP session")
    SessionState.session = None
