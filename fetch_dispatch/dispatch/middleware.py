# fetch_dispatch/dispatch/middleware.py
import json
from typing import Callable, Optional

import httpx

from fetch_dispatch.core.logger import get_logger
from fetch_dispatch.core.utils import force_utf8_encoding, is_success_status


class RequestMiddleware:
    """
    Middleware de debug des requêtes vers les API externes.

    Installé comme event hooks httpx par HttpxTransport. Il observe la requête
    avant l'envoi et la réponse à la réception, sans jamais les modifier.
      - hors production : toutes les requêtes et réponses sont tracées
      - en production : seules les réponses dont le code n'est pas valide
    """

    def __init__(self,
                 is_production: bool = False,
                 valid_http_code: Optional[Callable[[int, str], bool]] = None,
                 logger=None):
        self.is_production = is_production
        self.valid_http_code = valid_http_code or is_success_status
        self.logger = logger or get_logger(__name__)

    @staticmethod
    def _request_body(request: httpx.Request) -> str:
        try:
            return force_utf8_encoding(request.content)
        except httpx.RequestNotRead:
            return "<stream>"

    def should_log_response(self, status_code: int, url: str) -> bool:
        return not self.is_production or not self.valid_http_code(status_code, url)

    async def request(self, request: httpx.Request) -> None:
        if self.is_production:
            return
        payload = {
            "headers": dict(request.headers),
            "url": str(request.url),
            "body": self._request_body(request),
        }
        self.logger.debug("############## HTTP REQUEST  #####################\n%s",
                          json.dumps(payload, indent=2, ensure_ascii=False))

    async def response(self, response: httpx.Response) -> None:
        request = response.request
        url = str(request.url)
        if not self.should_log_response(response.status_code, url):
            return

        # aread() met le contenu en cache : la réponse reste lisible ensuite
        await response.aread()
        payload = {
            "request": {
                "headers": dict(request.headers),
                "url": url,
                "body": self._request_body(request),
            },
            "response": {
                "headers": dict(response.headers),
                "status": response.status_code,
                "url": url,
                "body": force_utf8_encoding(response.content),
            },
        }
        self.logger.debug("############## HTTP RESPONSE  #####################\n%s",
                          json.dumps(payload, indent=2, ensure_ascii=False))
