"""
Health reporting for the Kubernetes liveness & readiness probes.

Two endpoints are served by the same HTTP server as the webhook,
but outside of its basic authentication (the probes have no credentials):

* ``/.well-known/alive``: the process is up and serving (always succeeds).
* ``/.well-known/health``: the cluster API is reachable with our credentials.
"""
import asyncio
import datetime
import logging
from typing import Any, Optional

import aiohttp.web

from esupdater.clients import errors, scanning
from esupdater.structs import configuration, credentials

logger = logging.getLogger(__name__)

ALIVE_PATH = '/.well-known/alive'
HEALTH_PATH = '/.well-known/health'

# The probes can be frequent; the API is asked no more often than this.
PROBING_MAX_AGE = datetime.timedelta(seconds=10.0)


def make_routes(
        *,
        settings: configuration.Settings,
) -> list[aiohttp.web.RouteDef]:
    """
    Build the probing routes for the webhook server.

    The API check is cached for a short time and protected against the parallel
    probes performing the same request. The failures are not cached.
    """
    probing_result: Optional[dict[str, Any]] = None
    probing_timestamp: Optional[datetime.datetime] = None
    probing_lock = asyncio.Lock()

    async def get_alive(
            request: aiohttp.web.Request,
    ) -> aiohttp.web.Response:
        return aiohttp.web.json_response({'status': 'UP'})

    async def get_health(
            request: aiohttp.web.Request,
    ) -> aiohttp.web.Response:
        nonlocal probing_result, probing_timestamp

        async with probing_lock:
            now = datetime.datetime.now(datetime.timezone.utc)
            if probing_timestamp is None or now - probing_timestamp >= PROBING_MAX_AGE:
                try:
                    version = await scanning.read_version(settings=settings, logger=logger)
                except (errors.APIError, credentials.LoginError, aiohttp.ClientError) as e:
                    logger.warning(f"Health check has failed: {e}")
                    probing_result = probing_timestamp = None
                    return aiohttp.web.json_response({'status': 'DOWN', 'error': str(e)},
                                                     status=503)
                probing_result = {'status': 'UP', 'kubernetes': dict(version)}
                probing_timestamp = datetime.datetime.now(datetime.timezone.utc)

        return aiohttp.web.json_response(probing_result)

    return [
        aiohttp.web.get(ALIVE_PATH, get_alive),
        aiohttp.web.get(HEALTH_PATH, get_health),
    ]
