# fetch_dispatch/dispatch/dispatcher.py

import asyncio
from typing import Any, Callable, Optional, Set

from fetch_dispatch.core.config import get_request_options
from fetch_dispatch.core.exceptions import (
    FetchError,
    FetchTimeoutError,
    HttpStatusError,
    NoResponseError,
    TransportError,
)
from fetch_dispatch.core.httpx_client import HttpxTransport, Transport
from fetch_dispatch.core.logger import get_logger
from fetch_dispatch.core.utils import is_blank, is_success_status
from fetch_dispatch.dispatch.schema import (
    Blank,
    Body,
    Error,
    Outcome,
    Request,
    RequestOptions,
    TransportResponse,
)

log = get_logger(__name__)

BlankCallback = Callable[[Any], Any]
BodyCallback = Callable[[Any], Any]
ErrorCallback = Callable[[FetchError], Any]


def _noop(*_args) -> None:
    return None


class FetchDispatcher:
    """
    Cycle de vie d'une requête unique :
      - construit la requête à partir des options par défaut
      - la soumet au transport
      - classe la complétion en une seule issue : Error, Blank ou Body
      - route l'issue vers le bon callback (un seul, une seule fois)

    callback_before_success() et callback_error() sont des points d'extension
    (sous-classes), à l'image d'un décodage de la réponse avant dispatch.
    """

    def __init__(self,
                 transport: Optional[Transport] = None,
                 logger=None,
                 options: Optional[RequestOptions] = None,
                 middleware=None):
        self.options = options if options is not None else get_request_options()
        self.transport = transport if transport is not None else HttpxTransport(
            options=self.options, middleware=middleware
        )
        self.logger = logger or log
        # références fortes vers les tâches lancées par fetch()
        self._pending: Set[asyncio.Task] = set()

    # ---------------- Construction ----------------
    def build_request(self, url: str, method: str = "GET", **overrides) -> Request:
        options = self.options.with_overrides(**overrides) if overrides else self.options
        return Request(url=url, method=method, options=options)

    # ---------------- Points d'extension ----------------
    def callback_before_success(self, content: Optional[str]) -> Any:
        """
        Transformation appliquée à la réponse avant dispatch (identité par défaut),
        ex: décodage JSON. Une exception levée ici devient une issue Error.
        """
        return content

    def callback_error(self, cause: FetchError) -> None:
        """Enregistre l'erreur d'une requête. Terminal pour cette requête."""
        self.logger.debug("Error during fetching data  : %r", cause)

    # ---------------- Classification ----------------
    def classify(self, response: TransportResponse, request_id: str) -> Outcome:
        """Une complétion transport -> exactement une issue."""
        url = response.url
        if response.error is not None:
            return Error(request_id=request_id, cause=TransportError(response.error, url=url))
        if response.timed_out:
            return Error(request_id=request_id, cause=FetchTimeoutError("Got a time out", url=url))
        if response.status_code == 0:
            # Impossible d'obtenir une réponse HTTP
            return Error(request_id=request_id,
                         cause=NoResponseError(response.return_message, url=url))
        if not is_success_status(response.status_code, url):
            return Error(request_id=request_id,
                         cause=HttpStatusError(response.status_code, url=url))

        try:
            res = self.callback_before_success(response.body)
        except Exception as e:
            return Error(request_id=request_id,
                         cause=TransportError(f"{e.__class__.__name__}: {e}", url=url))
        if is_blank(res):
            return Blank(request_id=request_id, content=res)
        return Body(request_id=request_id, content=res)

    def dispatch_outcome(self,
                         outcome: Outcome,
                         on_blank: Optional[BlankCallback] = None,
                         on_body: Optional[BodyCallback] = None,
                         on_error: Optional[ErrorCallback] = None) -> None:
        if isinstance(outcome, Error):
            self.callback_error(outcome.cause)
            if on_error is not None:
                on_error(outcome.cause)
        elif isinstance(outcome, Blank):
            (on_blank or _noop)(outcome.content)
        elif isinstance(outcome, Body):
            (on_body or _noop)(outcome.content)
        else:
            raise TypeError(f"Issue inconnue : {outcome!r}")

    # ---------------- Envoi ----------------
    async def send(self, request: Request) -> TransportResponse:
        try:
            return await self.transport.send(request)
        except Exception as e:
            self.logger.debug("Transport raised for %s: %r", request.url, e)
            return TransportResponse.from_exception(request.url, e)

    async def fetch_async(self,
                          url: str,
                          on_blank: Optional[BlankCallback] = None,
                          on_body: Optional[BodyCallback] = None,
                          on_error: Optional[ErrorCallback] = None) -> Outcome:
        """
        Récupère une URL et route l'issue vers on_error / on_blank / on_body.
        :return: l'issue terminale de la requête
        """
        request = self.build_request(url)
        response = await self.send(request)
        outcome = self.classify(response, request.id)
        self.dispatch_outcome(outcome, on_blank, on_body, on_error)
        return outcome

    def fetch(self,
              url: str,
              on_blank: Optional[BlankCallback] = None,
              on_body: Optional[BodyCallback] = None,
              on_error: Optional[ErrorCallback] = None) -> asyncio.Task:
        """
        Version "fire-and-forget" : planifie la requête sur la boucle en cours et
        rend la main immédiatement. Les callbacks sont appelés plus tard sur la
        même boucle.
        """
        task = asyncio.get_running_loop().create_task(
            self.fetch_async(url, on_blank, on_body, on_error)
        )
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # exception levée par un callback client : tracée, jamais re-routée
            self.logger.error("Callback raised during fetch: %r", exc, exc_info=exc)

    async def aclose(self):
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()
