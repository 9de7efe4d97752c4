import asyncio
import logging
from typing import Optional

from esupdater.engines import activities
from esupdater.structs import configuration, credentials
from esupdater.toolkits import webhooks
from esupdater.utilities import loops

logger = logging.getLogger(__name__)


def run(
        *,
        settings: configuration.Settings,
        vault: Optional[credentials.Vault] = None,
        ready_flag: Optional[asyncio.Event] = None,
) -> None:
    """
    Run the whole updater synchronously.

    This function should be used to run the updater in the command line,
    or in an embedding code in a thread with no running event loop of its own.
    """
    try:
        loops.run(serve(settings=settings, vault=vault, ready_flag=ready_flag))
    except asyncio.CancelledError:
        pass


async def serve(
        *,
        settings: configuration.Settings,
        vault: Optional[credentials.Vault] = None,
        ready_flag: Optional[asyncio.Event] = None,
) -> None:
    """
    Log into the cluster and serve the webhooks until cancelled.

    A pre-populated vault can be passed by the embedding code (or the tests);
    otherwise, the credentials are retrieved from the environment. If none are
    available, `LoginError` is raised and nothing is served.
    """
    vault = vault if vault is not None else credentials.Vault()
    try:
        if not vault:
            await activities.authenticate(vault=vault)

        server = webhooks.WebhookServer(settings=settings, vault=vault)
        await server.serve(ready_flag=ready_flag)
    finally:
        # Close the API sessions, so that aiohttp does not complain on exit.
        await asyncio.shield(vault.close())
        logger.info("Stopped serving the webhooks.")
