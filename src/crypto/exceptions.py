"""
Gerarchia delle eccezioni del sistema credenziali accademiche.

Le funzioni di verifica non sollevano eccezioni quando un documento
semplicemente "non verifica": restituiscono un report con gli errori.
Le eccezioni sono riservate a errori di precondizione (chiave assente,
argomenti malformati) e ai fallimenti delle operazioni di emissione.
"""

from typing import Optional


class CredentialSystemError(Exception):
    """Eccezione base del sistema."""


class InputValidationError(CredentialSystemError, ValueError):
    """Dati di input mancanti o malformati."""


class KeyUnavailableError(CredentialSystemError):
    """Nessuna chiave di firma attiva o chiave pubblica non risolvibile."""


class CryptoOperationError(CredentialSystemError, RuntimeError):
    """Fallimento di una primitiva crittografica (firma, verifica, hash)."""


class CommitmentMismatchError(CredentialSystemError):
    """Il commitment ricalcolato non coincide con quello dichiarato."""

    def __init__(self, attribute: str, message: Optional[str] = None):
        self.attribute = attribute
        super().__init__(message or f"Commitment non corrispondente per l'attributo: {attribute}")
