import asyncio
from typing import Awaitable, Callable, List, Tuple

from fetch_dispatch.core.logger import get_logger
from fetch_dispatch.dispatch.schema import Request, TransportResponse

logger = get_logger(__name__)

SendFn = Callable[[Request], Awaitable[TransportResponse]]
CompleteFn = Callable[[Request, TransportResponse], None]


class RequestQueue:
    """
    File de travail concurrente ("hydra").

    Accumule des requêtes construites puis les exécute toutes en parallèle sur la
    boucle courante, avec un nombre maximal de requêtes simultanées.
    run() ne rend la main qu'une fois la file vidée (drain).
    """

    def __init__(self, send: SendFn, max_concurrency: int = 100):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency invalide : {max_concurrency} (doit être >= 1).")
        self._send = send
        self.max_concurrency = max_concurrency
        self._queued: List[Tuple[Request, CompleteFn]] = []
        self._in_flight = 0

    @property
    def pending(self) -> int:
        return len(self._queued) + self._in_flight

    @property
    def is_drained(self) -> bool:
        return self.pending == 0

    def queue(self, request: Request, on_complete: CompleteFn) -> None:
        self._queued.append((request, on_complete))

    async def _run_one(self, semaphore: asyncio.Semaphore, request: Request,
                       on_complete: CompleteFn) -> None:
        try:
            async with semaphore:
                try:
                    response = await self._send(request)
                except Exception as e:
                    # garde pour les send arbitraires ; FetchDispatcher.send ne lève jamais
                    logger.debug("Transport raised for %s: %r", request.url, e)
                    response = TransportResponse.from_exception(request.url, e)
        finally:
            # décompté aussi si la tâche est annulée en attente du sémaphore
            self._in_flight -= 1
        on_complete(request, response)

    async def run(self) -> List[BaseException]:
        """
        Exécute tout ce qui est en file, y compris les requêtes ajoutées pendant
        l'exécution. Retourne les exceptions levées par les handlers de complétion.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        failures: List[BaseException] = []
        while self._queued:
            batch, self._queued = self._queued, []
            self._in_flight += len(batch)
            results = await asyncio.gather(
                *(self._run_one(semaphore, request, on_complete) for request, on_complete in batch),
                return_exceptions=True,
            )
            failures.extend(r for r in results if isinstance(r, BaseException))
        return failures
