"""
Logging into the cluster by piggybacking on the well-known K8s API clients.

The updater is not a client library and does not implement the complex
auth-providers itself. If the official client library or pykube-ng is installed,
it is asked to authenticate, and the resulting basic credentials are extracted
for our own ``aiohttp``-based client.

Without those libraries, two rudimentary methods are available: the pod's
service account (when running in the cluster) and the developer's kubeconfig
(when running locally). The in-cluster credentials are always preferred.

.. seealso::
    :mod:`esupdater.structs.credentials`
    and :func:`esupdater.engines.activities.authenticate`.
"""
import os
from typing import Any, Optional, Sequence

import yaml

from esupdater.structs import credentials
from esupdater.utilities import typedefs

# Keep as constants to make them patchable. Higher priority is more preferred.
PRIORITY_OF_CLIENT: int = 20
PRIORITY_OF_PYKUBE: int = 10

# Rudimentary logins are used only if the clients are absent, so the priorities can overlap.
PRIORITY_OF_KUBECONFIG: int = 10
PRIORITY_OF_SERVICE_ACCOUNT: int = 20

# As per https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
SERVICE_ACCOUNT_SERVER = 'https://kubernetes.default.svc'
DEFAULT_KUBECONFIG = '~/.kube/config'


def has_client() -> bool:
    try:
        import kubernetes  # noqa: F401
    except ImportError:
        return False
    else:
        return True


def has_pykube() -> bool:
    try:
        import pykube  # noqa: F401
    except ImportError:
        return False
    else:
        return True


def has_service_account() -> bool:
    return os.path.exists(os.path.join(SERVICE_ACCOUNT_DIR, 'token'))


def has_kubeconfig() -> bool:
    env_var_set = bool(os.environ.get('KUBECONFIG'))
    file_exists = os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG))
    return env_var_set or file_exists


def login_via_client(
        *,
        logger: typedefs.Logger,
        **_: Any,
) -> Optional[credentials.ConnectionInfo]:

    # Keep imports in the function, as module imports are mocked in some tests.
    try:
        import kubernetes.config
    except ImportError:
        return None

    try:
        kubernetes.config.load_incluster_config()  # cluster env vars
        logger.debug("Client is configured in cluster with service account.")
    except kubernetes.config.ConfigException:
        try:
            kubernetes.config.load_kube_config()  # developer's config files
            logger.debug("Client is configured via kubeconfig file.")
        except kubernetes.config.ConfigException as e:
            raise credentials.LoginError("Cannot authenticate the client library "
                                         "neither in-cluster, nor via kubeconfig.") from e

    config = kubernetes.client.Configuration.get_default_copy()

    # For auth-providers, this method is monkey-patched with the auth-provider's one.
    # The token files and static tokens are also resolved by it.
    header: Optional[str] = config.get_api_key_with_prefix('authorization')
    scheme, token = _split_authorization(header)

    # The client library has no concept of a "current" context's namespace.
    return credentials.ConnectionInfo(
        server=config.host,
        ca_path=config.ssl_ca_cert,  # can be a temporary file
        insecure=not config.verify_ssl,
        username=config.username or None,  # an empty string when not defined
        password=config.password or None,  # an empty string when not defined
        scheme=scheme,
        token=token,
        certificate_path=config.cert_file,  # can be a temporary file
        private_key_path=config.key_file,  # can be a temporary file
        priority=PRIORITY_OF_CLIENT,
    )


def login_via_pykube(
        *,
        logger: typedefs.Logger,
        **_: Any,
) -> Optional[credentials.ConnectionInfo]:

    # Keep imports in the function, as module imports are mocked in some tests.
    try:
        import pykube
    except ImportError:
        return None

    config: pykube.KubeConfig
    try:
        config = pykube.KubeConfig.from_service_account()
        logger.debug("Pykube is configured in cluster with service account.")
    except FileNotFoundError:
        try:
            config = pykube.KubeConfig.from_file()
            logger.debug("Pykube is configured via kubeconfig file.")
        except (pykube.PyKubeError, FileNotFoundError) as e:
            raise credentials.LoginError("Cannot authenticate pykube "
                                         "neither in-cluster, nor via kubeconfig.") from e

    # The auth-provider's token is refreshed by pykube on the first request, whatever it is.
    provider_token = None
    if config.user.get('auth-provider'):
        api = pykube.HTTPClient(config)
        api.get(version='', base='/')  # ignore the response status
        provider_token = config.user.get('auth-provider', {}).get('config', {}).get('access-token')

    ca: Optional[pykube.config.BytesOrFile] = config.cluster.get('certificate-authority')
    cert: Optional[pykube.config.BytesOrFile] = config.user.get('client-certificate')
    pkey: Optional[pykube.config.BytesOrFile] = config.user.get('client-key')
    return credentials.ConnectionInfo(
        server=config.cluster.get('server'),
        ca_path=ca.filename() if ca else None,  # can be a temporary file
        insecure=config.cluster.get('insecure-skip-tls-verify'),
        username=config.user.get('username'),
        password=config.user.get('password'),
        token=config.user.get('token') or provider_token,
        certificate_path=cert.filename() if cert else None,  # can be a temporary file
        private_key_path=pkey.filename() if pkey else None,  # can be a temporary file
        default_namespace=config.namespace,
        priority=PRIORITY_OF_PYKUBE,
    )


def login_with_service_account(**_: Any) -> Optional[credentials.ConnectionInfo]:
    """
    Get the raw credentials of the pod's service account, if mounted.

    Only the token, the CA and the namespace are read. There is no support
    for the projected tokens' rotation: the token is read once at startup.
    """
    token = _read_stripped(os.path.join(SERVICE_ACCOUNT_DIR, 'token'))
    if token is None:
        return None

    namespace = _read_stripped(os.path.join(SERVICE_ACCOUNT_DIR, 'namespace'))
    ca_path = os.path.join(SERVICE_ACCOUNT_DIR, 'ca.crt')
    return credentials.ConnectionInfo(
        server=SERVICE_ACCOUNT_SERVER,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=namespace or None,
        priority=PRIORITY_OF_SERVICE_ACCOUNT,
    )


def login_with_kubeconfig(**_: Any) -> Optional[credentials.ConnectionInfo]:
    """
    Get the raw credentials of the current context from the kubeconfig files.

    The files are taken from ``$KUBECONFIG`` (multiple paths are allowed),
    or from ``~/.kube/config``. As in kubectl, the first definition of every
    context, cluster, and user wins; so does the first ``current-context``.

    No exec-plugins are executed and no tokens are refreshed: for those,
    install the official client library or pykube-ng.
    """
    kubeconfig = os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        kubeconfig = DEFAULT_KUBECONFIG
    if not kubeconfig:
        return None

    paths = [os.path.expanduser(path.strip()) for path in kubeconfig.split(os.pathsep)]
    current_context, contexts, clusters, users = _merge_kubeconfigs([p for p in paths if p])

    if current_context is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    try:
        context = contexts[current_context]
        cluster = clusters[context['cluster']]
        user = users[context['user']]
    except KeyError as e:
        raise credentials.LoginError(f"Kubeconfig is incomplete: {e} is not defined.") from e

    provider_token = user.get('auth-provider', {}).get('config', {}).get('access-token')
    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or provider_token,
        default_namespace=context.get('namespace'),
        priority=PRIORITY_OF_KUBECONFIG,
    )


def _merge_kubeconfigs(
        paths: Sequence[str],
) -> tuple[Optional[str], dict[str, Any], dict[str, Any], dict[str, Any]]:
    # An absent or non-deserialisable file fails the login, as in kubectl.
    current_context: Optional[str] = None
    contexts: dict[str, Any] = {}
    clusters: dict[str, Any] = {}
    users: dict[str, Any] = {}
    for path in paths:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f.read()) or {}

        if current_context is None:
            current_context = config.get('current-context')
        for section, key, storage in [('contexts', 'context', contexts),
                                      ('clusters', 'cluster', clusters),
                                      ('users', 'user', users)]:
            for item in config.get(section) or []:
                storage.setdefault(item['name'], item.get(key) or {})
    return current_context, contexts, clusters, users


def _split_authorization(header: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    # RFC-7235, Appendix C: either "token" or "scheme token".
    parts: Sequence[str] = header.split(' ', 1) if header else []
    if len(parts) == 0:
        return None, None
    elif len(parts) == 1:
        return None, parts[0]
    else:
        return parts[0], parts[1]


def _read_stripped(path: str) -> Optional[str]:
    if not os.path.exists(path):
        return None
    with open(path, encoding='utf-8') as f:
        return f.read().strip()
