from typing import Any, Mapping, Optional

import aiohttp

from esupdater.clients import auth, errors
from esupdater.structs import configuration
from esupdater.utilities import typedefs


@auth.authenticated
async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.Settings,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        context: Optional[auth.APIContext] = None,  # injected by the decorator
        logger: typedefs.Logger,
) -> Any:
    """
    Make a single request to the API and return the parsed JSON response.

    There are no retries: every call is a single attempt, and every failure
    is escalated to the caller, which decides whether to skip the unit
    of work or to fail the whole webhook request.
    """
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")
    if context.session.closed:
        raise errors.APISessionClosed("Session is closed.")

    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')

    # Without explicit timeouts, the defaults of the session apply.
    extra: dict[str, Any] = {}
    if settings.networking.request_timeout is not None or \
            settings.networking.connect_timeout is not None:
        extra['timeout'] = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    what = f"{method.upper()} {url}"
    logger.debug(f"Requesting the API: {what}")
    response = await context.session.request(
        method=method,
        url=url,
        json=payload,
        headers=headers,
        **extra,
    )
    async with response:
        await errors.check_response(response)
        return await response.json()


async def get(
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.Settings,
        headers: Optional[Mapping[str, str]] = None,
        logger: typedefs.Logger,
) -> Any:
    return await request(
        method='get',
        url=url,
        headers=headers,
        settings=settings,
        logger=logger,
    )


async def put(
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.Settings,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        logger: typedefs.Logger,
) -> Any:
    return await request(
        method='put',
        url=url,
        payload=payload,
        headers=headers,
        settings=settings,
        logger=logger,
    )
