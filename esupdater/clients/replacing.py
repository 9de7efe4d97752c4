from esupdater.clients import api
from esupdater.structs import bodies, configuration, references
from esupdater.utilities import typedefs


async def replace_obj(
        *,
        settings: configuration.Settings,
        resource: references.Resource,
        namespace: references.Namespace,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Replace (update) the whole object with the provided body.

    The body must contain ``metadata.resourceVersion`` as it was fetched:
    K8s API then guarantees the optimistic concurrency -- if the object has
    been modified since it was fetched, the update fails with HTTP 409
    (`APIConflictError`) instead of overwriting the newer state silently.

    Returns the object as stored by the server, with its new resource version.
    """
    name = bodies.get_name(body)
    if not name:
        raise ValueError("Only named objects can be replaced.")
    replaced: bodies.RawBody = await api.put(
        url=resource.get_url(namespace=namespace, name=name),
        headers={'Content-Type': 'application/json'},
        payload=body,
        settings=settings,
        logger=logger,
    )
    return replaced
