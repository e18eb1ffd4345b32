"""
Helpers for scheduling callbacks onto the running event loop
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Optional

from .logging_config import log_error_with_context

logger = logging.getLogger(__name__)


def spawn(awaitable: Awaitable[Any], operation: str, **context) -> asyncio.Future:
    """
    Schedule an awaitable on the running loop and log it if it fails.

    Failures still propagate to anyone awaiting the returned future.
    """
    future = asyncio.ensure_future(awaitable)
    
    def _log_failure(done: asyncio.Future):
        if done.cancelled():
            return
        error = done.exception()
        if error is not None:
            log_error_with_context(logger, error, operation, **context)
            
    future.add_done_callback(_log_failure)
    return future


def maybe_spawn(result: Any, operation: str, **context) -> Optional[asyncio.Future]:
    """Schedule ``result`` if a callback returned an awaitable"""
    if inspect.isawaitable(result):
        return spawn(result, operation, **context)
    return None
