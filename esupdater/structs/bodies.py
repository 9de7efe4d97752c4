"""
All the structures coming from/to the Kubernetes API.

For strict type-checking, they are detailed to the per-field level
(e.g. `TypedDict` instead of just ``Mapping[Any, Any]``) -- as used
by the updater. The resources can carry arbitrary fields at runtime,
which are not declared in the type definitions at type-checking time,
and which are preserved as is on every update.
"""
import copy
from typing import Any, Mapping

from typing_extensions import TypedDict

from esupdater.structs import dicts

Annotations = Mapping[str, str]


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Mapping[str, str]
    annotations: Annotations
    resourceVersion: str
    creationTimestamp: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


def get_name(body: RawBody) -> str | None:
    lookup = dicts.lookup_string(body, 'metadata.name')
    return lookup.value if lookup.found else None


def get_namespace(body: RawBody) -> str | None:
    lookup = dicts.lookup_string(body, 'metadata.namespace')
    return lookup.value if lookup.found else None


def build_object_reference(body: RawBody) -> dict[str, Any]:
    """
    Construct an object reference for the logs (the same as in K8s events).
    """
    return dict(
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=get_name(body),
        uid=dicts.lookup_string(body, 'metadata.uid').value,
        namespace=get_namespace(body),
    )


def annotated(body: RawBody, annotations: Annotations) -> RawBody:
    """
    Build a copy of the body with extra annotations merged into the existing ones.

    The original body is not modified: it can be still in use by the caller
    (e.g. for logging or for a retry with a fresh copy). The annotations are
    merged, not replaced; absent or ``null`` annotations are created anew.
    Everything else, including ``metadata.resourceVersion``, is kept as is.
    """
    new_body: RawBody = copy.deepcopy(body)
    existing = dicts.lookup_mapping(new_body, 'metadata.annotations')
    merged = dict(existing.value or {})
    merged.update(annotations)
    dicts.ensure(new_body, 'metadata.annotations', merged)  # type: ignore[arg-type]
    return new_body
