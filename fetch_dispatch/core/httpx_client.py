import ssl
from typing import Dict, Optional, Protocol, Tuple

import httpx

from fetch_dispatch.core.config import get_max_connections, get_request_options
from fetch_dispatch.core.logger import get_logger
from fetch_dispatch.dispatch.schema import Request, RequestOptions, TLSOptions, TransportResponse

logger = get_logger(__name__)


class Transport(Protocol):
    """Capacité de transport : exécute une requête et rapporte sa complétion."""

    async def send(self, request: Request) -> TransportResponse:
        ...


class HttpxTransport:
    """
    Transport asynchrone basé sur httpx.

    Ne lève jamais pour une erreur réseau : timeout, absence de réponse (code 0)
    et autres erreurs httpx sont rapportés dans le TransportResponse.
    """

    def __init__(self,
                 options: Optional[RequestOptions] = None,
                 middleware=None,
                 max_connections: Optional[int] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.options = options if options is not None else get_request_options()
        self.middleware = middleware
        self.max_connections = max_connections or get_max_connections()
        # transport httpx sous-jacent (injectable, ex: httpx.MockTransport en test)
        self._transport = transport
        # Un client par (TLS, redirections, keep-alive), créé à la première requête dans la boucle courante
        self._clients: Dict[Tuple[TLSOptions, int, bool], httpx.AsyncClient] = {}

    # ---------------- Construction du client ----------------
    @staticmethod
    def _timeout(options: RequestOptions) -> httpx.Timeout:
        return httpx.Timeout(options.inactivity_timeout, connect=options.connect_timeout)

    @staticmethod
    def _verify(tls: TLSOptions):
        if not tls.cipher_list and tls.verify_peer == tls.verify_host:
            return tls.verify_peer

        context = ssl.create_default_context()
        if not tls.verify_peer:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        elif not tls.verify_host:
            context.check_hostname = False
        if tls.cipher_list:
            context.set_ciphers(tls.cipher_list)
        return context

    def _build_client(self, tls: TLSOptions, redirects: int, keepalive: bool) -> httpx.AsyncClient:
        options = self.options
        headers = dict(options.headers)
        keepalive_connections = self.max_connections
        if not keepalive:
            headers["Connection"] = "close"
            keepalive_connections = 0

        event_hooks = {}
        if self.middleware is not None:
            event_hooks = {
                "request": [self.middleware.request],
                "response": [self.middleware.response],
            }

        return httpx.AsyncClient(
            timeout=self._timeout(options),
            verify=self._verify(tls),
            follow_redirects=options.follow_redirects,
            max_redirects=redirects,
            headers=headers,
            limits=httpx.Limits(max_connections=self.max_connections,
                                max_keepalive_connections=keepalive_connections),
            event_hooks=event_hooks,
            transport=self._transport,
        )

    def _get_client(self, options: RequestOptions) -> httpx.AsyncClient:
        # TLS, profondeur de redirection et keep-alive sont fixés au niveau du client httpx
        key = (options.tls, options.redirects, options.keepalive)
        client = self._clients.get(key)
        if client is None or client.is_closed:
            client = self._clients[key] = self._build_client(*key)
        return client

    @staticmethod
    def _headers(options: RequestOptions) -> Dict[str, str]:
        headers = dict(options.headers)
        if not options.keepalive:
            headers["Connection"] = "close"
        return headers

    # ---------------- Envoi ----------------
    async def send(self, request: Request) -> TransportResponse:
        opts = request.options
        logger.debug("➡️ %s %s", request.method, request.url)

        try:
            response = await self._get_client(opts).request(
                request.method,
                request.url,
                headers=self._headers(opts),
                timeout=self._timeout(opts),
                follow_redirects=opts.follow_redirects,
            )
        except httpx.TimeoutException as e:
            return TransportResponse(url=request.url, timed_out=True,
                                     return_message=str(e) or "Timeout was reached")
        except httpx.TransportError as e:
            # Aucune réponse HTTP n'a pu être obtenue
            return TransportResponse(url=request.url, status_code=0,
                                     return_message=str(e) or e.__class__.__name__)
        except httpx.HTTPError as e:
            return TransportResponse(url=request.url, status_code=0,
                                     error=str(e) or e.__class__.__name__)

        logger.debug("⬅️ Response %s: %s", response.status_code, response.text[:300])
        return TransportResponse(
            url=request.url,
            status_code=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )

    async def aclose(self):
        clients, self._clients = self._clients, {}
        for client in clients.values():
            await client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
