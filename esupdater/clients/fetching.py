from typing import Collection, Optional

from esupdater.clients import api
from esupdater.structs import bodies, configuration, references
from esupdater.utilities import typedefs


async def list_objs(
        *,
        settings: configuration.Settings,
        resource: references.Resource,
        namespace: references.Namespace,
        logger: typedefs.Logger,
) -> Collection[bodies.RawBody]:
    """
    List the objects of specific resource type.

    For namespaced resources, the namespace-scoped call is used if the namespace
    is specified, and the cluster-wide call otherwise. For cluster-scoped
    resources (e.g. namespaces themselves), the namespace must not be set.
    """
    rsp = await api.get(
        url=resource.get_url(namespace=namespace),
        settings=settings,
        logger=logger,
    )

    # The list items have no kind & apiVersion in K8s API, only the list itself has them.
    items: list[bodies.RawBody] = []
    for item in rsp.get('items', None) or []:
        if 'kind' in rsp:
            item.setdefault('kind', rsp['kind'][:-4] if rsp['kind'][-4:] == 'List' else rsp['kind'])
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(item)
    return items


async def read_obj(
        *,
        settings: configuration.Settings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: Optional[str],
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Read a fresh copy of one specific object, with its latest resource version.

    Unlike `list_objs`, this call fails with `APINotFoundError`
    if the object is absent, since the caller expects it to exist.
    """
    obj: bodies.RawBody = await api.get(
        url=resource.get_url(namespace=namespace, name=name),
        settings=settings,
        logger=logger,
    )
    return obj
