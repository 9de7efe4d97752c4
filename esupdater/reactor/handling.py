"""
Handling of one webhook request: from the events to the updated resources.

Everything is sequential: the namespaces one by one, the resources one by one.
A namespace that cannot be listed is skipped. A resource that cannot be
updated fails the whole request, and the remaining resources are not checked.
"""
import collections.abc
import dataclasses
import logging

import aiohttp

from esupdater.clients import auth, errors, fetching
from esupdater.engines import activities, loggers
from esupdater.reactor import matching, namespaces, updating
from esupdater.structs import bodies, configuration, dicts, references
from esupdater.structs.events import Event
from esupdater.utilities import typedefs

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Summary:
    namespaces: int = 0
    scanned: int = 0
    updated: int = 0


async def process_events(
        events: collections.abc.Sequence[Event],
        *,
        settings: configuration.Settings,
        logger: typedefs.Logger = logger,
) -> Summary:
    """
    Touch all ExternalSecrets that reference the item of the event.

    Only the first event of the batch is processed; the rest are ignored.
    """
    logger.debug(f"Received events: {events!r}")
    if not events:
        return Summary()

    item_name = events[0].item_name
    logger.info(f"Received event for secret update: {item_name}")
    if len(events) > 1:
        logger.debug(f"Ignoring {len(events) - 1} more event(s) of the same request.")

    await activities.reauthenticate(vault=auth.vault_var.get(), logger=logger)
    hook = updating.make_post_update_hook(settings=settings, logger=logger)
    names = await namespaces.enumerate_namespaces(settings=settings, logger=logger)

    scanned = updated = 0
    for namespace in names:
        logger.info(f"Checking namespace: {namespace}")
        try:
            objs = await fetching.list_objs(
                resource=references.EXTERNALSECRETS,
                namespace=namespace,
                settings=settings,
                logger=logger,
            )
        except (errors.APIError, aiohttp.ClientError) as e:
            logger.error(f"Failed to list ExternalSecrets in namespace {namespace}: {e}")
            continue

        for body in objs:
            scanned += 1
            if await process_resource(body=body, namespace=namespace, item_name=item_name,
                                      hook=hook, settings=settings):
                updated += 1

    summary = Summary(namespaces=len(names), scanned=scanned, updated=updated)
    logger.info(f"Processed {summary.scanned} ExternalSecret(s) in {summary.namespaces} "
                f"namespace(s), updated {summary.updated}.")
    return summary


async def process_resource(
        *,
        body: bodies.RawBody,
        namespace: str,
        item_name: str,
        hook: updating.PostUpdateHook,
        settings: configuration.Settings,
) -> bool:
    """ Match and update one resource. Return ``True`` if it was updated. """
    name = bodies.get_name(body)
    logger = loggers.ObjectLogger(body=body)
    logger.info(f"Processing ExternalSecret: {name} in namespace {namespace}")

    spec = dicts.lookup_mapping(body, 'spec')
    if not spec.found:
        logger.error(f"Error retrieving spec for ExternalSecret {namespace}/{name}: "
                     f"it is {spec.shape.value}, not a mapping.")
        return False

    if not matching.is_referenced(spec.value or {}, item_name, logger=logger):
        logger.info(f"Desired key {item_name!r} not found in ExternalSecret {namespace}/{name}")
        return False

    logger.info(f"Desired key found in ExternalSecret {namespace}/{name}")
    try:
        await updating.update_resource(body=body, namespace=namespace, hook=hook,
                                       settings=settings, logger=logger)
    except updating.UpdateError as e:
        logger.error(f"Failed to update ExternalSecret {e.namespace}/{e.name}: {e}")
        raise
    logger.info(f"Successfully updated ExternalSecret {namespace}/{name}")
    return True
