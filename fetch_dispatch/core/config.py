# fetch_dispatch/core/config.py

import os
from typing import Optional

from dotenv import load_dotenv

from fetch_dispatch.dispatch.schema import RequestOptions, TLSOptions

load_dotenv()

DEFAULT_MAX_CONNECTIONS = 100

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} invalide : {raw!r} (nombre attendu).")


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} invalide : {raw!r} (entier attendu).")


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def get_request_options() -> RequestOptions:
    """
    Options de requête par défaut, surchargées par les variables d'environnement
    (FETCH_CONNECT_TIMEOUT, FETCH_INACTIVITY_TIMEOUT, FETCH_REDIRECTS,
    FETCH_VERIFY_TLS, FETCH_TLS_CIPHERS).
    """
    verify = _get_bool("FETCH_VERIFY_TLS", False)
    ciphers: Optional[str] = os.getenv("FETCH_TLS_CIPHERS") or None
    return RequestOptions(
        connect_timeout=_get_float("FETCH_CONNECT_TIMEOUT", 5.0),
        inactivity_timeout=_get_float("FETCH_INACTIVITY_TIMEOUT", 10.0),
        redirects=_get_int("FETCH_REDIRECTS", 5),
        tls=TLSOptions(verify_peer=verify, verify_host=verify, cipher_list=ciphers),
    )


def get_max_connections() -> int:
    return _get_int("FETCH_MAX_CONNECTIONS", DEFAULT_MAX_CONNECTIONS)


def is_production() -> bool:
    """Vrai si APP_ENV ou RACK_ENV vaut 'production'."""
    return os.getenv("APP_ENV") == "production" or os.getenv("RACK_ENV") == "production"
