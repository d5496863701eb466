"""
Async utilities for running blocking operations in an executor.

Export rendering (reportlab layout, openpyxl workbook serialization) is CPU
and memory bound; it is offloaded to a thread so the event loop keeps serving
other report calls.

Usage:
    from core.async_utils import run_blocking

    # Instead of: serializer.render(doc, fmt)
    content = await run_blocking(serializer.render, doc, fmt)
"""

import asyncio
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking function in a separate thread to avoid blocking the event loop.

    Args:
        func: The synchronous function to run
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        The result of the function call
    """
    loop = asyncio.get_running_loop()
    # Use None for the executor to use the default ThreadPoolExecutor
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))
