import logging

from .exceptions import (
    CredentialSystemError,
    InputValidationError,
    KeyUnavailableError,
    CryptoOperationError,
    CommitmentMismatchError
)
from .foundations import (
    ECKeyManager,
    DigitalSignature,
    DeterministicSerializer,
    CryptoUtils,
    get_signature_info
)

__version__ = "1.0.0"

__all__ = [
    "ECKeyManager",
    "DigitalSignature",
    "DeterministicSerializer",
    "CryptoUtils",
    "get_signature_info",
    "CredentialSystemError",
    "InputValidationError",
    "KeyUnavailableError",
    "CryptoOperationError",
    "CommitmentMismatchError"
]

RECOMMENDED_CONFIG = {
    "curve": "P-256",
    "hash_algorithm": "SHA-256",
    "signature_encoding": "hex",
    "nonce_bytes": 16
}

SUPPORTED_ALGORITHMS = {
    "asymmetric": ["ECDSA-P256"],
    "signatures": ["ECDSA-P256-SHA256"],
    "hashing": ["SHA-256"],
    "commitments": ["SHA-256(JSON(value) || nonce)"]
}

def get_crypto_info():
    return {
        "name": "Academic Credentials Crypto",
        "version": __version__,
        "description": "Cryptographic foundations for academic credentials",
        "recommended_config": RECOMMENDED_CONFIG,
        "supported_algorithms": SUPPORTED_ALGORITHMS,
        "security_features": [
            "ECDSA P-256 key generation",
            "Fixed-length r||s signatures",
            "Deterministic sorted-key canonicalization",
            "Hash commitments with CSPRNG nonces",
            "Timing-attack resistant comparisons"
        ]
    }

def validate_security_config(config: dict) -> bool:
    issues = []

    curve = config.get('curve', '')
    if curve != 'P-256':
        issues.append(f"Curve {curve} not supported")

    hash_alg = config.get('hash_algorithm', '')
    if hash_alg != 'SHA-256':
        issues.append(f"Hash algorithm {hash_alg} not supported")

    nonce_bytes = config.get('nonce_bytes', 0)
    if nonce_bytes < 16:
        issues.append(f"Nonce size {nonce_bytes} too small (minimum 16)")

    return not issues


def setup_crypto_logging(level=logging.INFO):
    """Configura logging per il modulo crypto"""
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
