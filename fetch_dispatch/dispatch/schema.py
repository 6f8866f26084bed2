import uuid
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from fetch_dispatch.core.exceptions import FetchError


# --- Options de connexion / requête ---

class TLSOptions(BaseModel):
    """Politique TLS appliquée par le transport"""
    verify_peer: bool           = Field(False, description="Vérification du certificat du pair.")
    verify_host: bool           = Field(False, description="Vérification du nom d'hôte.")
    cipher_list: Optional[str]  = Field(None, description="Liste OpenSSL des suites de chiffrement (ex: 'ALL').")

    model_config = ConfigDict(frozen=True)


def _default_headers() -> Dict[str, str]:
    return {"Accept": "*/*"}


class RequestOptions(BaseModel):
    """Options par défaut utilisées pour toutes les requêtes sortantes."""
    connect_timeout: float      = Field(5.0, gt=0, description="Timeout d'établissement de connexion (s).")
    inactivity_timeout: float   = Field(10.0, gt=0, description="Timeout d'inactivité après connexion (s).")
    tls: TLSOptions             = Field(default_factory=TLSOptions)
    redirects: int              = Field(5, ge=0, description="Profondeur maximale de redirections 3XX.")
    follow_redirects: bool      = Field(True, description="Suivre les redirections.")
    keepalive: bool             = Field(True, description="Ne pas envoyer 'Connection: close'.")
    headers: Dict[str, str]     = Field(default_factory=_default_headers)

    model_config = ConfigDict(frozen=True)

    def with_overrides(self, **overrides) -> "RequestOptions":
        """Retourne une copie modifiée (le modèle est immuable)."""
        return self.model_copy(update=overrides)


class Request(BaseModel):
    """Requête construite par le dispatcher, immuable une fois créée."""
    url: str
    method: Literal["GET"]      = "GET"
    options: RequestOptions     = Field(default_factory=RequestOptions)
    id: str                     = Field(default_factory=lambda: uuid.uuid4().hex)

    model_config = ConfigDict(frozen=True)


class TransportResponse(BaseModel):
    """
    Ce que le transport rapporte à la complétion d'une requête.
    status_code == 0 signifie qu'aucune réponse n'a pu être obtenue.
    """
    url: str
    status_code: int            = 0
    body: Optional[str]         = None
    headers: Dict[str, str]     = Field(default_factory=dict)
    timed_out: bool             = False
    return_message: str         = ""
    error: Optional[str]        = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_exception(cls, url: str, exc: BaseException) -> "TransportResponse":
        """Complétion en erreur pour un transport qui a levé au lieu de rapporter."""
        return cls(url=url, error=f"{exc.__class__.__name__}: {exc}")


# --- Issue terminale d'une requête : Error | Blank | Body ---

class Error(BaseModel):
    request_id: str
    cause: FetchError

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class Blank(BaseModel):
    request_id: str
    # contenu éventuellement transformé par callback_before_success (ex: JSON décodé)
    content: Any = None

    model_config = ConfigDict(frozen=True)


class Body(BaseModel):
    request_id: str
    content: Any

    model_config = ConfigDict(frozen=True)


Outcome = Union[Error, Blank, Body]
