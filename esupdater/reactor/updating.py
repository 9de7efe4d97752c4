"""
Touching the ExternalSecrets, so that the operator reloads the external secrets.

The only modification is the annotations: ``updated-by`` & ``updated-at``.
Any change of the resource makes the external-secrets operator re-sync it,
and these annotations also show to humans why and when it happened.

The update is a full replacement (HTTP PUT) of the fetched body, with its
``metadata.resourceVersion`` as it was fetched. If the resource has been
modified by someone else in the meantime, K8s rejects the stale write
with HTTP 409 Conflict instead of overwriting the newer state.

After the update, a post-update hook is executed. With the cache buster
enabled, it waits for a while and then updates the resource once again,
now from a freshly fetched copy: some secret stores and caches can miss
the first change if it follows the secret's modification too closely.
"""
import asyncio
import dataclasses
import datetime
from typing import Optional, Protocol

import aiohttp

from esupdater.clients import errors, fetching, replacing
from esupdater.structs import bodies, configuration, references
from esupdater.utilities import typedefs

UPDATED_BY_ANNOTATION = 'updated-by'
UPDATED_AT_ANNOTATION = 'updated-at'
UPDATED_BY_VALUE = 'externalsecret-updater'


class UpdateError(Exception):
    """ Raised when a matched resource could not be updated (or re-fetched). """

    def __init__(self, msg: str, *, namespace: references.Namespace, name: Optional[str]) -> None:
        super().__init__(msg)
        self.namespace = namespace
        self.name = name


class PostUpdateHook(Protocol):
    async def __call__(
            self,
            *,
            body: bodies.RawBody,
            namespace: str,
            settings: configuration.Settings,
            logger: typedefs.Logger,
    ) -> None: ...


class NoopHook:
    """ Do nothing after the update: the cache buster is disabled. """

    async def __call__(
            self,
            *,
            body: bodies.RawBody,
            namespace: str,
            settings: configuration.Settings,
            logger: typedefs.Logger,
    ) -> None:
        logger.debug("Cache buster is disabled.")


@dataclasses.dataclass(frozen=True)
class CacheBusterHook:
    """
    Wait, re-fetch the resource, and update it once again.

    The wait does not block the other requests, only the current one.
    """
    interval: float

    async def __call__(
            self,
            *,
            body: bodies.RawBody,
            namespace: str,
            settings: configuration.Settings,
            logger: typedefs.Logger,
    ) -> None:
        name = bodies.get_name(body)
        logger.info(f"Cache buster enabled. Waiting for {self.interval}s before the second update.")
        await asyncio.sleep(self.interval)

        # The first update has changed the resource version, so the old body would conflict.
        try:
            fresh = await fetching.read_obj(
                resource=references.EXTERNALSECRETS,
                namespace=namespace,
                name=name,
                settings=settings,
                logger=logger,
            )
        except (errors.APIError, aiohttp.ClientError) as e:
            logger.error(f"Failed to fetch the latest ExternalSecret {name}: {e}")
            raise UpdateError(f"Failed to re-fetch ExternalSecret {namespace}/{name}: {e}",
                              namespace=namespace, name=name) from e

        logger.info(f"Performing the second update on ExternalSecret {name} to bust the cache.")
        await _annotate(body=fresh, namespace=namespace, settings=settings, logger=logger)
        logger.info(f"Successfully performed the second update on ExternalSecret {name}.")


def make_post_update_hook(
        *,
        settings: configuration.Settings,
        logger: typedefs.Logger,
) -> PostUpdateHook:
    """
    Select the post-update hook as configured, for one webhook request.

    The wait interval is parsed every time; a broken value does not break
    the updates, it only falls back to the default interval (and complains).
    """
    if not settings.cachebuster.enabled:
        return NoopHook()

    interval = configuration.DEFAULT_CACHE_BUSTER_INTERVAL
    if settings.cachebuster.interval:
        try:
            interval = configuration.parse_duration(settings.cachebuster.interval)
        except configuration.DurationError as e:
            logger.error(f"Invalid duration for CACHE_BUSTER_WAIT_INTERVAL, "
                         f"using the default of {interval}s: {e}")
    return CacheBusterHook(interval=interval)


async def update_resource(
        *,
        body: bodies.RawBody,
        namespace: str,
        settings: configuration.Settings,
        logger: typedefs.Logger,
        hook: Optional[PostUpdateHook] = None,
) -> None:
    """
    Annotate the matched resource as touched, and run the post-update hook.

    The body is not modified in place: the annotated copy is sent instead.
    Every failure is escalated as `UpdateError` with the resource's identity.
    """
    hook = hook if hook is not None else NoopHook()
    await _annotate(body=body, namespace=namespace, settings=settings, logger=logger)
    await hook(body=body, namespace=namespace, settings=settings, logger=logger)


async def _annotate(
        *,
        body: bodies.RawBody,
        namespace: str,
        settings: configuration.Settings,
        logger: typedefs.Logger,
) -> None:
    name = bodies.get_name(body)
    new_body = bodies.annotated(body, {
        UPDATED_BY_ANNOTATION: UPDATED_BY_VALUE,
        UPDATED_AT_ANNOTATION: format_timestamp(),
    })

    logger.info(f"Updating ExternalSecret {name} in namespace {namespace}.")
    try:
        await replacing.replace_obj(
            resource=references.EXTERNALSECRETS,
            namespace=namespace,
            body=new_body,
            settings=settings,
            logger=logger,
        )
    except (errors.APIError, aiohttp.ClientError, ValueError) as e:
        logger.error(f"Failed to update ExternalSecret {name}: {e}")
        raise UpdateError(f"Failed to update ExternalSecret {namespace}/{name}: {e}",
                          namespace=namespace, name=name) from e
    logger.info(f"Successfully updated ExternalSecret {name}.")


def format_timestamp(when: Optional[datetime.datetime] = None) -> str:
    """ RFC 3339 in UTC with the second precision, e.g. ``2024-05-17T10:20:30Z``. """
    when = when if when is not None else datetime.datetime.now(datetime.timezone.utc)
    return when.astimezone(datetime.timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
