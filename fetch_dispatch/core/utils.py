from typing import Any, Optional

# --- Fonctions utilitaires de classification ---

SUCCESS_STATUS_MIN = 200
SUCCESS_STATUS_MAX = 399


def is_blank(value: Optional[Any]) -> bool:
    """
    Vrai si la valeur ne porte aucun contenu utile :
    None, chaîne vide, chaîne composée uniquement d'espaces, ou conteneur vide.
    """
    if value is None:
        return True
    if isinstance(value, bytes):
        return not value.strip()
    if isinstance(value, str):
        return not value.strip()
    try:
        return len(value) == 0
    except TypeError:
        return False


def is_success_status(status_code: int, url: Optional[str] = None) -> bool:
    """Plage de statuts acceptée comme complétion réussie (2xx et 3xx terminaux)."""
    return SUCCESS_STATUS_MIN <= status_code <= SUCCESS_STATUS_MAX


def force_utf8_encoding(value: Optional[Any]) -> str:
    """
    Retourne une chaîne UTF-8 affichable, quelles que soient les données reçues.
    Les octets invalides sont remplacés plutôt que de lever UnicodeDecodeError.
    """
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value).encode("utf-8", errors="replace").decode("utf-8")
