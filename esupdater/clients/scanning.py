from typing import Collection, Mapping

from esupdater.clients import api, fetching
from esupdater.structs import bodies, configuration, references
from esupdater.utilities import typedefs


async def read_version(
        *,
        settings: configuration.Settings,
        logger: typedefs.Logger,
) -> Mapping[str, str]:
    rsp: Mapping[str, str] = await api.get('/version', settings=settings, logger=logger)
    return rsp


async def list_namespaces(
        *,
        settings: configuration.Settings,
        logger: typedefs.Logger,
) -> Collection[str]:
    """
    List the names of all namespaces in the cluster.

    This requires the cluster-wide permissions to list the namespaces.
    Without them, the call fails with `APIForbiddenError` -- it is up to
    the caller to decide how to fall back.
    """
    items = await fetching.list_objs(
        resource=references.NAMESPACES,
        namespace=None,
        settings=settings,
        logger=logger,
    )
    names = [bodies.get_name(item) for item in items]
    return [name for name in names if name]
