"""
The authentication activity: the login into the cluster.

The vault is populated at startup with all the credentials that could
be retrieved. There is no background re-authentication: if the credentials
are invalidated by 401s later (e.g. the service-account tokens are rotated),
the current request fails, and the next one logs in again before doing
anything else (see :func:`reauthenticate`).

The process is split into multiple packages:

* The authenticating activity (this module) decides which methods to use.
* The vault (:mod:`esupdater.structs.credentials`) is used mostly in the API
  client wrappers, which are low-level and cannot import the engines.
* Specific authentication methods (:mod:`esupdater.utilities.piggybacking`)
  belong to neither the engines, nor the client wrappers.
"""
import logging
from typing import Any, Callable, Mapping, Optional

from esupdater.structs import credentials
from esupdater.utilities import piggybacking, typedefs

logger = logging.getLogger(__name__)

LoginFn = Callable[..., Optional[credentials.ConnectionInfo]]


def get_login_fns() -> Mapping[str, LoginFn]:
    """
    Select the login methods available in the current environment.

    The client libraries, if installed, take precedence over everything else.
    Without them, the service account and the kubeconfig are both tried,
    but the in-cluster credentials have a higher priority in the vault.
    """
    fns: dict[str, LoginFn] = {}
    if piggybacking.has_pykube():
        fns['login_via_pykube'] = piggybacking.login_via_pykube
    if piggybacking.has_client():
        fns['login_via_client'] = piggybacking.login_via_client
    if not fns:
        if piggybacking.has_service_account():
            fns['login_with_service_account'] = piggybacking.login_with_service_account
        if piggybacking.has_kubeconfig():
            fns['login_with_kubeconfig'] = piggybacking.login_with_kubeconfig
    return fns


async def authenticate(
        *,
        vault: credentials.Vault,
        login_fns: Optional[Mapping[str, LoginFn]] = None,
        logger: typedefs.Logger = logger,
) -> None:
    """
    Retrieve the credentials once and put them to the vault.

    A failure of one login method is logged and does not prevent others
    from being tried. If none of them succeeds, `LoginError` is raised,
    and the process must not serve the webhooks.
    """
    login_fns = get_login_fns() if login_fns is None else login_fns
    logger.info("Authentication has been initiated.")

    results: dict[str, credentials.ConnectionInfo] = {}
    for name, fn in login_fns.items():
        try:
            info: Any = fn(logger=logger)
        except Exception as e:
            logger.exception(f"Login method {name!r} has failed: {e}")
        else:
            if isinstance(info, credentials.ConnectionInfo):
                results[name] = info
            elif info is not None:
                logger.warning(f"Login method {name!r} returned an unsupported value: {info!r}")

    if not results:
        raise credentials.LoginError("Ran out of valid credentials: "
                                     "no credentials were retrieved from the login methods.")

    logger.info("Authentication has finished.")
    await vault.populate(results)


async def reauthenticate(
        *,
        vault: credentials.Vault,
        login_fns: Optional[Mapping[str, LoginFn]] = None,
        logger: typedefs.Logger = logger,
) -> None:
    """ Log in again, but only if all the credentials have been invalidated. """
    if not vault:
        logger.info("All credentials have been invalidated. Re-authenticating.")
        await authenticate(vault=vault, login_fns=login_fns, logger=logger)
