"""
Async utilities for running blocking operations in an executor.

The MinIO client is synchronous; storage calls go through ``run_blocking`` so
they never stall the event loop.

Usage:
    from core.async_utils import run_blocking

    result = await run_blocking(client.stat_object, bucket, key)
"""

import asyncio
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking function in the default thread pool.

    Args:
        func: The synchronous function to run
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        The result of the function call
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))
