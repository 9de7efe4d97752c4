"""
Field-in-a-dict lookup helpers for loosely-typed Kubernetes documents.

The custom resources are JSON-decoded trees of arbitrary shape: some of them
are edited manually, some are produced by older or newer versions of the CRD.
We cannot trust that ``spec.data`` is a list, or that ``remoteRef`` is a dict.

Instead of scattering the ``isinstance()`` checks all over the matching logic,
every node of such a tree is classified into one of a few shapes
(a small tagged union), and the typed accessors return a lookup outcome
with the shape and the value -- never raising on the wrong shapes::

    lookup = lookup_sequence(body, 'spec.data')
    if lookup.found:
        for item in lookup.value:
            ...
    elif lookup.shape is not Shape.ABSENT:
        logger.error(f"spec.data is not a list but {lookup.shape.value}.")
"""
import collections.abc
import dataclasses
import enum
from typing import Any, Generic, Mapping, Sequence, TypeVar

FieldPath = tuple[str, ...]
FieldSpec = None | str | FieldPath | list[str]

_T = TypeVar('_T')


class Shape(enum.Enum):
    """ The tag of a node in a JSON-like tree. """
    MAPPING = 'mapping'
    SEQUENCE = 'sequence'
    STRING = 'string'
    OTHER = 'other'
    ABSENT = 'absent'


def shape_of(value: Any) -> Shape:
    # Strings and bytes are sequences too, but never in the sense of JSON lists.
    if isinstance(value, (str, bytes)):
        return Shape.STRING
    elif isinstance(value, collections.abc.Mapping):
        return Shape.MAPPING
    elif isinstance(value, collections.abc.Sequence):
        return Shape.SEQUENCE
    else:
        return Shape.OTHER


@dataclasses.dataclass(frozen=True)
class Lookup(Generic[_T]):
    """
    An outcome of a typed lookup: found or not, and why not.

    ``found`` is true only if the field exists AND has the requested shape.
    ``shape`` is the actual shape of the field (``ABSENT`` if it is missing
    or if one of its parents is missing or is not a mapping).
    ``path`` is the fully parsed field path, for diagnostics.
    """
    found: bool
    value: _T | None
    shape: Shape
    path: FieldPath

    def __bool__(self) -> bool:
        return self.found


def parse_field(
        field: FieldSpec,
) -> FieldPath:
    """
    Convert any field into a tuple of nested sub-fields.

    Supported notations:

    * ``None`` (for root of a dict).
    * ``"field.subfield"``
    * ``("field", "subfield")``
    * ``["field", "subfield"]``
    """
    if field is None:
        return tuple()
    elif isinstance(field, str):
        return tuple(field.split('.'))
    elif isinstance(field, (list, tuple)):
        return tuple(field)
    else:
        raise ValueError(f"Field must be either a str, or a list/tuple. Got {field!r}")


def lookup(
        d: Any,
        field: FieldSpec,
) -> Lookup[Any]:
    """
    Retrieve a nested sub-field of any shape.

    All non-existent and non-mapping intermediate values are treated
    as absent: we cannot dive deep into non-dictionary values, and we do not
    want to fail on the resources corrupted externally.
    """
    path = parse_field(field)
    result = d
    for key in path:
        if isinstance(result, collections.abc.Mapping) and key in result:
            result = result[key]
        else:
            return Lookup(found=False, value=None, shape=Shape.ABSENT, path=path)
    return Lookup(found=True, value=result, shape=shape_of(result), path=path)


def _lookup_shaped(d: Any, field: FieldSpec, shape: Shape) -> Lookup[Any]:
    outcome = lookup(d, field)
    if outcome.found and outcome.shape is not shape:
        return dataclasses.replace(outcome, found=False, value=None)
    return outcome


def lookup_mapping(d: Any, field: FieldSpec) -> Lookup[Mapping[str, Any]]:
    return _lookup_shaped(d, field, Shape.MAPPING)


def lookup_sequence(d: Any, field: FieldSpec) -> Lookup[Sequence[Any]]:
    return _lookup_shaped(d, field, Shape.SEQUENCE)


def lookup_string(d: Any, field: FieldSpec) -> Lookup[str]:
    outcome = _lookup_shaped(d, field, Shape.STRING)
    if outcome.found and isinstance(outcome.value, bytes):  # never from JSON, only from tests.
        return dataclasses.replace(outcome, value=outcome.value.decode('utf-8'))
    return outcome


def ensure(
        d: dict[Any, Any],
        field: FieldSpec,
        value: Any,
) -> None:
    """
    Force-set a nested sub-field in a dict.

    If some levels of parents are missing or are ``None``, they are created
    as empty dicts (this what makes it "ensuring", not just "setting").
    """
    result = d
    path = parse_field(field)
    if not path:
        raise ValueError("Setting a root of a dict is impossible. Provide the specific fields.")
    for key in path[:-1]:
        if result.get(key) is None:
            result[key] = {}
        result = result[key]
    result[path[-1]] = value
