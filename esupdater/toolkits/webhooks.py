"""
The HTTP server for the incoming webhooks of the secret store.

The server is based on ``aiohttp``. It serves one endpoint for the events
(``POST /webhook`` by default), protected by the HTTP basic authentication,
and the health probes, which are not protected.

Mind the different ways the errors are reported to the webhook senders:

* 400 Bad Request: the events are malformed; nothing was done.
* 401 Unauthorized: the credentials are missing or wrong; nothing was done.
* 500 Internal Server Error: the events are good, but the resources could not
  be updated; some resources may be already updated, some not.
"""
import asyncio
import hmac
import logging
from typing import Awaitable, Callable, Optional

import aiohttp
import aiohttp.web

from esupdater.clients import auth
from esupdater.engines import probing
from esupdater.reactor import handling, namespaces, updating
from esupdater.structs import configuration, credentials, events

logger = logging.getLogger(__name__)

Handler = Callable[[aiohttp.web.Request], Awaitable[aiohttp.web.StreamResponse]]

# The probes have no credentials, so they are served outside of the basic auth.
UNPROTECTED_PATHS = frozenset({probing.ALIVE_PATH, probing.HEALTH_PATH})

# The errors that fail the request after the events are accepted.
PROCESSING_ERRORS = (
    updating.UpdateError,
    namespaces.NamespaceDiscoveryError,
    credentials.LoginError,
)


class WebhookServer:
    """
    A local HTTP endpoint for the secret-store webhooks.

    * ``settings`` provide the listening address, the path, and the credentials.
    * ``vault`` is the pre-authenticated credentials vault for the cluster API;
      it is made available to every request via :data:`auth.vault_var`.
    """

    def __init__(
            self,
            *,
            settings: configuration.Settings,
            vault: credentials.Vault,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.vault = vault

    def make_app(self) -> aiohttp.web.Application:
        path = '/' + self.settings.webhook.path.lstrip('/')
        app = aiohttp.web.Application(middlewares=[self._vault_middleware, self._auth_middleware])
        app.add_routes([aiohttp.web.post(path, self._serve)])
        app.add_routes(probing.make_routes(settings=self.settings))
        return app

    async def serve(self, *, ready_flag: Optional[asyncio.Event] = None) -> None:
        """
        Serve the webhooks forever, until cancelled.
        """
        runner = aiohttp.web.AppRunner(self.make_app(), handle_signals=False)
        await runner.setup()
        try:
            site = aiohttp.web.TCPSite(runner, self.settings.webhook.host, self.settings.webhook.port)
            await site.start()

            host = self.settings.webhook.host or '*'
            port = self.settings.webhook.port
            logger.info(f"Listening for webhooks at http://{host}:{port}{self.settings.webhook.path}")
            if ready_flag is not None:
                ready_flag.set()

            await asyncio.Event().wait()
        finally:
            # On any reason of exit, stop serving the endpoint.
            await asyncio.shield(runner.cleanup())

    @aiohttp.web.middleware
    async def _vault_middleware(
            self,
            request: aiohttp.web.Request,
            handler: Handler,
    ) -> aiohttp.web.StreamResponse:
        # Every request runs in its own task with its own context, so it is set per request.
        auth.vault_var.set(self.vault)
        return await handler(request)

    @aiohttp.web.middleware
    async def _auth_middleware(
            self,
            request: aiohttp.web.Request,
            handler: Handler,
    ) -> aiohttp.web.StreamResponse:
        if request.path not in UNPROTECTED_PATHS and not self._is_authorized(request):
            raise aiohttp.web.HTTPUnauthorized(
                headers={'WWW-Authenticate': 'Basic realm="externalsecret-updater"'},
            )
        return await handler(request)

    def _is_authorized(self, request: aiohttp.web.Request) -> bool:
        header = request.headers.get('Authorization')
        if not header:
            return False
        try:
            provided = aiohttp.BasicAuth.decode(header)
        except ValueError:
            return False
        # Both are compared even if the first one fails, to not leak which one is wrong.
        username_ok = hmac.compare_digest(provided.login.encode('utf-8'),
                                          self.settings.webhook.username.encode('utf-8'))
        password_ok = hmac.compare_digest(provided.password.encode('utf-8'),
                                          self.settings.webhook.password.encode('utf-8'))
        return username_ok and password_ok

    async def _serve(
            self,
            request: aiohttp.web.Request,
    ) -> aiohttp.web.Response:
        """
        Serve a single webhook request: an aiohttp-specific implementation.

        The content type is not checked: some senders declare no JSON at all.
        """
        try:
            data = await request.read()
            batch = events.decode_events(data)
        except events.EventDecodeError as e:
            logger.error(f"Failed to bind incoming events: {e}")
            raise aiohttp.web.HTTPBadRequest(text=str(e))

        try:
            await handling.process_events(batch, settings=self.settings)
        except PROCESSING_ERRORS as e:
            logger.error(f"Error updating ExternalSecrets: {e}")
            raise aiohttp.web.HTTPInternalServerError(text=str(e))

        return aiohttp.web.Response(status=200)
