# fetch_dispatch/core/exceptions.py
from typing import Optional


class FetchError(Exception):
    """Erreur terminale d'une requête sortante (jamais levée vers l'appelant de fetch)."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class TransportError(FetchError):
    """Erreur de connexion remontée par le transport (diagnostic natif)."""
    pass


class FetchTimeoutError(FetchError):
    """Timeout de connexion ou d'inactivité dépassé."""
    pass


class NoResponseError(FetchError):
    """Code 0 : aucune réponse HTTP n'a pu être obtenue (DNS, connexion refusée...)."""

    def __init__(self, return_message: str, url: Optional[str] = None):
        super().__init__(return_message, url=url)
        self.return_message = return_message


class HttpStatusError(FetchError):
    """Réponse reçue mais code de statut hors de la plage acceptée."""

    def __init__(self, status_code: int, url: Optional[str] = None):
        super().__init__(f"HTTP request failed: {status_code}", url=url)
        self.status_code = status_code
