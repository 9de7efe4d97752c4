"""
Enumeration of the namespaces to search the ExternalSecrets in.

The updater can be deployed either with the cluster-wide permissions
(and then it serves all namespaces), or with the namespace-scoped permissions
only (and then it serves only its own namespace, as mounted into the pod).
"""
import collections.abc

import aiohttp

from esupdater.clients import errors, scanning
from esupdater.structs import configuration
from esupdater.utilities import typedefs


class NamespaceDiscoveryError(OSError):
    """ Raised when neither the listing nor the pod's own namespace are available. """


async def enumerate_namespaces(
        *,
        settings: configuration.Settings,
        logger: typedefs.Logger,
) -> collections.abc.Collection[str]:
    try:
        return await scanning.list_namespaces(settings=settings, logger=logger)
    except (errors.APIError, aiohttp.ClientError) as e:
        logger.warning(f"Failed to list namespaces: {e}. Falling back to the deployed namespace.")

    path = settings.discovery.namespace_path
    try:
        with open(path, encoding='utf-8') as f:
            namespace = f.read().strip()
    except OSError as e:
        logger.error(f"Failed to get the deployed namespace from {path}: {e}")
        raise NamespaceDiscoveryError(f"Cannot read the deployed namespace from {path}.") from e
    if not namespace:
        logger.error(f"The deployed namespace in {path} is empty.")
        raise NamespaceDiscoveryError(f"The deployed namespace in {path} is empty.")
    return [namespace]
