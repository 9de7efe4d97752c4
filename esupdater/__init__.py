"""
The main module of the updater, with all the exported functions & classes.

The updater is mostly used as a process (``esupdater run``), but it can be
also embedded into other asyncio applications via :func:`serve`.
"""
# isort: skip_file

from esupdater.clients.errors import (
    APIError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
)
from esupdater.engines.loggers import (
    LogFormat,
    configure,
)
from esupdater.reactor.handling import (
    Summary,
    process_events,
)
from esupdater.reactor.matching import (
    is_referenced,
)
from esupdater.reactor.namespaces import (
    NamespaceDiscoveryError,
    enumerate_namespaces,
)
from esupdater.reactor.running import (
    run,
    serve,
)
from esupdater.reactor.updating import (
    CacheBusterHook,
    NoopHook,
    UpdateError,
    make_post_update_hook,
    update_resource,
)
from esupdater.structs.configuration import (
    ConfigurationError,
    Settings,
    parse_duration,
)
from esupdater.structs.credentials import (
    ConnectionInfo,
    LoginError,
    Vault,
)
from esupdater.structs.events import (
    Event,
    EventDecodeError,
    decode_events,
    parse_events,
)
from esupdater.utilities.typedefs import (
    Logger,
)
from esupdater.utilities.versions import (
    version as __version__,
)

__all__ = [
    'APIError', 'APIUnauthorizedError', 'APIForbiddenError',
    'APINotFoundError', 'APIConflictError',
    'LogFormat', 'configure',
    'Summary', 'process_events',
    'is_referenced',
    'NamespaceDiscoveryError', 'enumerate_namespaces',
    'run', 'serve',
    'CacheBusterHook', 'NoopHook', 'UpdateError',
    'make_post_update_hook', 'update_resource',
    'ConfigurationError', 'Settings', 'parse_duration',
    'ConnectionInfo', 'LoginError', 'Vault',
    'Event', 'EventDecodeError', 'decode_events', 'parse_events',
    'Logger',
    '__version__',
]
