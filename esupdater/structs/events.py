"""
Inbound events of the secret-management webhooks.

A webhook request carries a JSON array of event objects, each describing
an action on a named item in the secret store, e.g.::

    [{"event_id": 17, "event_level": "info", "event_type": "item_updated",
      "item_name": "/db/password", "item_id": 42, "item_type": "secret",
      "payload": {"user": "admin"}}]

All fields are optional. Only ``item_name`` is used for the matching.

.. note::
    Only the first event of a batch is acted upon by the request handling.
    This is the current (possibly unintended) behaviour of the webhook,
    kept as is until decided otherwise.
"""
import collections.abc
import dataclasses
import json
from typing import Any, Mapping


class EventDecodeError(ValueError):
    """ Raised when the request body is not a batch of well-formed events. """


@dataclasses.dataclass(frozen=True)
class Event:
    event_id: int = 0
    event_level: str = ''
    event_type: str = ''
    item_name: str = ''
    item_id: int = 0
    item_type: str = ''
    payload: Mapping[str, str] = dataclasses.field(default_factory=dict)


_INT_FIELDS = frozenset({'event_id', 'item_id'})
_STR_FIELDS = frozenset({'event_level', 'event_type', 'item_name', 'item_type'})


def decode_events(text: str | bytes) -> tuple[Event, ...]:
    """ Decode the raw request body into the events. """
    try:
        raw = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise EventDecodeError(f"The request body is not a valid JSON: {e}") from e
    return parse_events(raw)


def parse_events(raw: Any) -> tuple[Event, ...]:
    """
    Convert the JSON-decoded request body into the events, in their order.

    Either all of the events are parsed, or none: a single malformed event
    fails the whole batch (there is no partial processing of the requests).
    A JSON `null` is an empty batch, as some senders send no events this way.
    """
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise EventDecodeError(f"Events must be a JSON array, got {type(raw).__name__}.")
    return tuple(_parse_event(item, idx) for idx, item in enumerate(raw))


def _parse_event(item: Any, idx: int) -> Event:
    if not isinstance(item, collections.abc.Mapping):
        raise EventDecodeError(f"Event #{idx} must be a JSON object, got {type(item).__name__}.")

    kwargs: dict[str, Any] = {}
    for key, value in item.items():
        if value is None:  # same as absent
            continue
        elif key in _INT_FIELDS:
            # NB: bool is an int in Python, but not in JSON.
            if not isinstance(value, int) or isinstance(value, bool):
                raise EventDecodeError(f"Event #{idx} has a non-integer {key}: {value!r}")
            kwargs[key] = value
        elif key in _STR_FIELDS:
            if not isinstance(value, str):
                raise EventDecodeError(f"Event #{idx} has a non-string {key}: {value!r}")
            kwargs[key] = value
        elif key == 'payload':
            if not isinstance(value, collections.abc.Mapping) or \
                    not all(isinstance(v, str) for v in value.values()):
                raise EventDecodeError(f"Event #{idx} has a malformed payload: {value!r}")
            kwargs[key] = dict(value)
        # Unknown fields are ignored: the senders add new fields from time to time.
    return Event(**kwargs)
