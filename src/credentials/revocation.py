"""
Registro delle revoche, collaboratore opzionale della verifica.

La firma della credenziale non porta informazioni di revoca: lo stato
è mantenuto separatamente e consultato dal verificatore.
"""

import logging
import threading
from typing import Dict, Optional, Protocol

from crypto.foundations import CryptoUtils


logger = logging.getLogger(__name__)


class RevocationRegistry(Protocol):
    def is_revoked(self, credential_id: str) -> bool: ...


class InMemoryRevocationRegistry:
    """Registro delle revoche in memoria."""

    def __init__(self):
        self._revoked: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def revoke(self, credential_id: str, reason: str) -> None:
        """Registra la revoca di una credenziale."""
        with self._lock:
            self._revoked[credential_id] = {
                'reason': reason,
                'revoked_at': CryptoUtils.generate_secure_timestamp()
            }
        logger.info("Credenziale revocata: %s, Motivo: %s", credential_id, reason)

    def is_revoked(self, credential_id: str) -> bool:
        with self._lock:
            return credential_id in self._revoked

    def get_reason(self, credential_id: str) -> Optional[str]:
        with self._lock:
            entry = self._revoked.get(credential_id)
        return entry['reason'] if entry else None
