# fetch_dispatch/dispatch/batch.py
import asyncio
import time
from typing import Callable, Dict, Iterable, Optional

from fetch_dispatch.core.config import get_max_connections
from fetch_dispatch.core.logger import get_logger
from fetch_dispatch.dispatch.dispatcher import (
    BlankCallback,
    BodyCallback,
    ErrorCallback,
    FetchDispatcher,
)
from fetch_dispatch.dispatch.hydra import RequestQueue
from fetch_dispatch.dispatch.schema import Outcome, Request, TransportResponse

logger = get_logger(__name__)


class BatchState:
    """Issue terminale (ou None tant qu'en attente) de chaque requête d'un lot."""

    def __init__(self):
        self._outcomes: Dict[str, Optional[Outcome]] = {}

    def register(self, request_id: str) -> None:
        self._outcomes[request_id] = None

    def resolve(self, request_id: str, outcome: Outcome) -> None:
        if self._outcomes.get(request_id) is not None:
            raise RuntimeError(f"Requête {request_id} déjà résolue.")
        self._outcomes[request_id] = outcome

    @property
    def pending(self) -> int:
        return sum(1 for outcome in self._outcomes.values() if outcome is None)

    @property
    def is_complete(self) -> bool:
        return self.pending == 0

    def __len__(self) -> int:
        return len(self._outcomes)


class BatchFetcher:
    """
    Exécution concurrente de plusieurs requêtes :
      - instance.fetch_all_async(...)  -> asynchrone, rend la main une fois le lot vidé
      - instance.fetch_all(...)        -> wrapper synchrone (utilise asyncio.run)

    La classification est celle du FetchDispatcher (source unique).
    Les erreurs sont par requête : aucune n'interrompt les autres.
    """

    def __init__(self, dispatcher: Optional[FetchDispatcher] = None, max_concurrency: Optional[int] = None):
        self.dispatcher = dispatcher if dispatcher is not None else FetchDispatcher()
        self.max_concurrency = max_concurrency or get_max_connections()

    def build_request(self, url: str) -> Request:
        tls = self.dispatcher.options.tls.model_copy(update={"verify_peer": False, "verify_host": False})
        return self.dispatcher.build_request(url, follow_redirects=True, tls=tls)

    async def fetch_all_async(self,
                              urls: Iterable[str],
                              on_blank: Optional[BlankCallback] = None,
                              on_body: Optional[BodyCallback] = None,
                              on_error: Optional[ErrorCallback] = None,
                              on_drain: Optional[Callable[[], None]] = None) -> None:
        """
        Lance en parallèle une requête par URL et ne rend la main qu'une fois
        chacune arrivée à une issue terminale. on_drain() est appelé une seule
        fois, après le dernier callback.
        """
        hydra = RequestQueue(self.dispatcher.send, max_concurrency=self.max_concurrency)
        state = BatchState()

        def on_complete(request: Request, response: TransportResponse) -> None:
            outcome = self.dispatcher.classify(response, request.id)
            state.resolve(request.id, outcome)
            self.dispatcher.dispatch_outcome(outcome, on_blank, on_body, on_error)

        for url in urls:
            request = self.build_request(url)
            state.register(request.id)
            hydra.queue(request, on_complete)

        start = time.perf_counter()
        failures = await hydra.run()
        elapsed = time.perf_counter() - start
        logger.debug("fetch_all_async completed %d requests in %.3fs", len(state), elapsed)

        for failure in failures:
            # exception levée par un callback client : n'affecte pas les autres requêtes
            self.dispatcher.logger.error("Callback raised during batch: %r", failure, exc_info=failure)

        if not state.is_complete:
            raise RuntimeError(f"Lot vidé avec {state.pending} requête(s) sans issue.")

        if on_drain is not None:
            on_drain()

    # -------- Wrapper synchrone --------
    def fetch_all(self, *args, **kwargs) -> None:
        """
        Wrapper synchrone. Attention : si tu appelles depuis une boucle asyncio active,
        tu dois utiliser fetch_all_async() directement.
        """
        async def _run():
            try:
                await self.fetch_all_async(*args, **kwargs)
            finally:
                # le client httpx est lié à la boucle créée par asyncio.run
                await self.dispatcher.aclose()

        asyncio.run(_run())
