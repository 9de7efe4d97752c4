import asyncio
from typing import Coroutine, TypeVar

_T = TypeVar('_T')


def run(coro: Coroutine[None, None, _T]) -> _T:
    """
    Run the main coroutine in a properly managed event loop.

    If ``uvloop`` is installed, it is used. Otherwise, the default asyncio
    loop is used. Only the CLI uses this; the embedding code runs its own loops.
    """
    try:
        import uvloop
    except ImportError:
        return asyncio.run(coro)
    else:
        return uvloop.run(coro)
