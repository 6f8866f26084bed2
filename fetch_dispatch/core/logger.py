import logging
import os
from dotenv import load_dotenv

# charge immédiatement le .env
load_dotenv()

ROOT_LOGGER_NAME = "fetch_dispatch"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_log_level() -> str:
    """FETCH_LOG_LEVEL prime sur LOG_LEVEL (INFO par défaut)."""
    return (os.getenv("FETCH_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO").upper()


def _configure_root() -> logging.Logger:
    """Un seul handler, posé sur le logger parent 'fetch_dispatch'."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        root.setLevel(get_log_level())
        root.propagate = False
        root.debug("Logger initialized for '%s' with level=%s", ROOT_LOGGER_NAME, root.level)
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Retourne un logger enfant de 'fetch_dispatch' : les modules du paquet
    partagent le handler et le niveau du parent.
    """
    root = _configure_root()
    if name == ROOT_LOGGER_NAME:
        return root
    if not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
