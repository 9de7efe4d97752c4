"""
All configuration flags, options, settings of the updater.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

The settings are read from the environment once at the process startup
(see :meth:`Settings.from_environ`) and are then passed explicitly
to the request-handling routines. They are never looked up implicitly
from the environment or from the globals down the stack, so the routines
can be tested with any settings without patching the environment.

Some of the settings are mandatory (the credentials of the webhook),
some are not (but all of them have reasonable defaults).
"""
import dataclasses
import os
import re
from typing import Mapping, Optional

DEFAULT_CACHE_BUSTER_INTERVAL: float = 2.0
""" The cache-buster wait interval (seconds) if unset or unparsable. """

SERVICE_ACCOUNT_NAMESPACE_PATH = '/var/run/secrets/kubernetes.io/serviceaccount/namespace'


class ConfigurationError(Exception):
    """ Raised when the settings are missing or invalid. The process must not start. """


class DurationError(ValueError):
    """ Raised when a duration string cannot be parsed. """


@dataclasses.dataclass
class WebhookSettings:

    username: str = ''
    """
    The username of the HTTP basic authentication for the webhook endpoint.
    Sourced from ``BASIC_AUTH_USER``; mandatory.
    """

    password: str = dataclasses.field(default='', repr=False)
    """
    The password of the HTTP basic authentication for the webhook endpoint.
    Sourced from ``BASIC_AUTH_PASSWORD``; mandatory.
    """

    host: Optional[str] = None
    """
    The address to listen on. ``None`` means all interfaces.
    """

    port: int = 8000
    """
    The port to listen on. Sourced from ``HTTP_PORT``.
    """

    path: str = '/webhook'
    """
    The URL path of the webhook endpoint. Sourced from ``WEBHOOK_PATH``.
    """


@dataclasses.dataclass
class CacheBusterSettings:

    enabled: bool = False
    """
    Should a second annotation update be made after a delay?
    Sourced from ``ENABLE_CACHE_BUSTER`` (only ``"true"`` enables it).

    Some secret-store providers and the operator's own caches can miss
    a change that happens too soon after the previous one; the second update
    forces them to re-observe the resource once again.
    """

    interval: Optional[str] = None
    """
    How long to wait before the second update, as a duration string
    (e.g. ``"2s"``, ``"500ms"``, ``"1m30s"``).
    Sourced from ``CACHE_BUSTER_WAIT_INTERVAL``.

    It is kept as a string and is parsed on every request: an unparsable
    value falls back to :data:`DEFAULT_CACHE_BUSTER_INTERVAL` with an error
    in the logs, but does not prevent the process from starting.
    """


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = None
    """
    A timeout for the API requests (in seconds). ``None`` means no timeout
    beyond the defaults of the underlying HTTP client.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for the API connection establishing (in seconds).
    """


@dataclasses.dataclass
class DiscoverySettings:

    namespace_path: str = SERVICE_ACCOUNT_NAMESPACE_PATH
    """
    A file with the pod's own namespace, as mounted by Kubernetes.
    Used as a fallback when listing the namespaces is not permitted.
    """


@dataclasses.dataclass
class Settings:
    webhook: WebhookSettings = dataclasses.field(default_factory=WebhookSettings)
    cachebuster: CacheBusterSettings = dataclasses.field(default_factory=CacheBusterSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    discovery: DiscoverySettings = dataclasses.field(default_factory=DiscoverySettings)

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Read the settings from the environment variables (``os.environ`` by default).

        Raises `ConfigurationError` if the mandatory credentials are not set.
        """
        environ = os.environ if environ is None else environ

        username = environ.get('BASIC_AUTH_USER', '')
        password = environ.get('BASIC_AUTH_PASSWORD', '')
        if not username or not password:
            raise ConfigurationError("BASIC_AUTH_USER and BASIC_AUTH_PASSWORD "
                                     "environment variables must be set.")

        port_text = environ.get('HTTP_PORT') or '8000'
        try:
            port = int(port_text)
        except ValueError:
            raise ConfigurationError(f"HTTP_PORT must be an integer, got {port_text!r}.")

        return cls(
            webhook=WebhookSettings(
                username=username,
                password=password,
                port=port,
                path=environ.get('WEBHOOK_PATH') or '/webhook',
            ),
            cachebuster=CacheBusterSettings(
                enabled=environ.get('ENABLE_CACHE_BUSTER') == 'true',
                interval=environ.get('CACHE_BUSTER_WAIT_INTERVAL') or None,
            ),
        )


_DURATION_UNITS: Mapping[str, float] = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,  # U+00B5 micro sign
    'μs': 1e-6,  # U+03BC greek mu
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)')


def parse_duration(text: str) -> float:
    """
    Parse a Go-style duration string into seconds.

    A duration is a possibly signed sequence of decimal numbers, each with
    an optional fraction and a unit suffix, e.g. ``"300ms"``, ``"-1.5h"``,
    ``"2h45m"``. Valid units are ``ns``, ``us`` (or ``µs``), ``ms``, ``s``,
    ``m``, ``h``. A unitless ``"0"`` is also accepted; other unitless numbers
    are not.
    """
    orig = text
    sign = 1.0
    if text[:1] in ('-', '+'):
        sign = -1.0 if text[0] == '-' else 1.0
        text = text[1:]
    if text == '0':
        return 0.0
    if not text:
        raise DurationError(f"Invalid duration: {orig!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise DurationError(f"Invalid duration: {orig!r}")
        number, unit = match.groups()
        total += float(number) * _DURATION_UNITS[unit]
        pos = match.end()
    return sign * total
