"""
Detection of ExternalSecrets that reference a specific item of the secret store.

An ExternalSecret references the external items in two ways::

    spec:
      data:
        - secretKey: password
          remoteRef:
            key: /db/password     # one key of an item
      dataFrom:
        - extract:
            key: db/credentials   # all keys of an item

The ``data`` references are compared regardless of one leading slash on either
side (``/db/password`` is the same as ``db/password``), while the ``dataFrom``
references must match exactly. This asymmetry is kept as is: the existing
deployments can depend on it.
"""
from typing import Any, Mapping

from esupdater.structs import dicts
from esupdater.utilities import typedefs


def is_referenced(
        spec: Mapping[str, Any],
        item_name: str,
        *,
        logger: typedefs.Logger,
) -> bool:
    """
    Check if the resource's spec references the item by its name.

    Malformed entries are logged and skipped; the rest of the entries
    are still checked. The first matching entry is sufficient.
    """
    return (_match_data(spec, item_name, logger=logger) or
            _match_data_from(spec, item_name, logger=logger))


def _match_data(spec: Mapping[str, Any], item_name: str, *, logger: typedefs.Logger) -> bool:
    expected = _strip_slash(item_name)
    for idx, entry in enumerate(_entries(spec, 'data', logger=logger)):
        key = _entry_key(entry, 'remoteRef', idx=idx, section='data', logger=logger)
        if key is not None and _strip_slash(key) == expected:
            return True
    return False


def _match_data_from(spec: Mapping[str, Any], item_name: str, *, logger: typedefs.Logger) -> bool:
    for idx, entry in enumerate(_entries(spec, 'dataFrom', logger=logger)):
        key = _entry_key(entry, 'extract', idx=idx, section='dataFrom', logger=logger)
        if key is not None and key == item_name:
            return True
    return False


def _entries(spec: Mapping[str, Any], section: str, *, logger: typedefs.Logger) -> list[Any]:
    lookup = dicts.lookup_sequence(spec, section)
    if lookup.found:
        return list(lookup.value or [])
    if lookup.shape is not dicts.Shape.ABSENT and dicts.lookup(spec, section).value is not None:
        logger.error(f"spec.{section} is not a list but {lookup.shape.value}; ignoring it.")
    return []


def _entry_key(
        entry: Any,
        ref: str,
        *,
        idx: int,
        section: str,
        logger: typedefs.Logger,
) -> str | None:
    where = f"spec.{section}[{idx}]"
    if dicts.shape_of(entry) is not dicts.Shape.MAPPING:
        logger.error(f"Invalid {where}: not a mapping but {dicts.shape_of(entry).value}.")
        return None

    ref_lookup = dicts.lookup_mapping(entry, ref)
    if not ref_lookup.found:
        logger.error(f"Invalid {where}: {ref} is {ref_lookup.shape.value}, not a mapping.")
        return None

    key_lookup = dicts.lookup_string(ref_lookup.value, 'key')
    if not key_lookup.found:
        logger.error(f"Invalid {where}: {ref}.key is {key_lookup.shape.value}, not a string.")
        return None

    logger.debug(f"Found key in {where}.{ref}: {key_lookup.value}")
    return key_lookup.value


def _strip_slash(s: str) -> str:
    return s[1:] if s.startswith('/') else s
