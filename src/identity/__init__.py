"""
Modulo Identity per la gestione degli identificativi DID e delle chiavi
di firma di issuer e holder.
"""

import logging

from .did_manager import (
    DIDManager,
    DIDManagerConfiguration,
    DIDRecord,
    DIDKeys,
    KeyProvider,
    PublicKeyResolver,
    did_from_public_key,
    public_key_from_did
)

__version__ = "1.0.0"

__all__ = [
    "DIDManager",
    "DIDManagerConfiguration",
    "DIDRecord",
    "DIDKeys",
    "KeyProvider",
    "PublicKeyResolver",
    "did_from_public_key",
    "public_key_from_did",
]


def setup_identity_logging(level=logging.INFO):
    """Configura logging per il modulo identity"""
    logger = logging.getLogger(__name__)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
