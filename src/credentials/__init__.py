"""
Modulo Credentials per la gestione delle credenziali accademiche
del sistema decentralizzato.

Questo modulo fornisce le componenti principali per:
- Strutture dati delle credenziali e calcolo della media
- Emissione credenziali da parte delle università
- Verifica delle credenziali e registro delle revoche
"""

import logging
from typing import Dict, Any

from crypto.exceptions import (
    CredentialSystemError,
    InputValidationError,
    KeyUnavailableError,
    CryptoOperationError,
    CommitmentMismatchError
)

# Import modelli principali
from .models import (
    Credential,
    Course,
    Proof,
    CREDENTIAL_CONTEXT,
    CREDENTIAL_TYPE,
    PROOF_TYPE,
    PROOF_PURPOSE,
    GRADE_POINTS,
    calculate_gpa,
    build_credential_subject
)

# Import issuer
from .issuer import (
    AcademicCredentialIssuer,
    IssuerConfiguration,
    create_proof,
    issue_credential
)

# Import validator
from .validator import (
    AcademicCredentialVerifier,
    VerifierConfiguration,
    CredentialVerificationResult,
    OriginalProofPolicy,
    verify_credential,
    verify_document_signature
)

from .revocation import InMemoryRevocationRegistry, RevocationRegistry

__version__ = "1.0.0"

__all__ = [
    # Modelli principali
    "Credential",
    "Course",
    "Proof",
    "calculate_gpa",
    "build_credential_subject",

    # Issuer
    "AcademicCredentialIssuer",
    "IssuerConfiguration",
    "create_proof",
    "issue_credential",

    # Verifica
    "AcademicCredentialVerifier",
    "VerifierConfiguration",
    "CredentialVerificationResult",
    "OriginalProofPolicy",
    "verify_credential",
    "verify_document_signature",

    # Revoche
    "InMemoryRevocationRegistry",
    "RevocationRegistry",

    # Errori
    "CredentialSystemError",
    "InputValidationError",
    "KeyUnavailableError",
    "CryptoOperationError",
    "CommitmentMismatchError"
]

# Standard supportati dal sistema
SUPPORTED_STANDARDS = {
    "credential_format": "W3C Verifiable Credentials (semplificato)",
    "context": CREDENTIAL_CONTEXT,
    "type": CREDENTIAL_TYPE,
    "proof_type": PROOF_TYPE,
    "proof_purpose": PROOF_PURPOSE,
    "grade_scale": sorted(GRADE_POINTS.keys())
}

# Configurazioni consigliate per i componenti
RECOMMENDED_CONFIGURATIONS = {
    "issuer": {
        "persist_issued": True,
        "default_validity_days": None
    },
    "verifier": {
        "original_proof_policy": "cryptographic",
        "clock_skew_seconds": 0
    }
}


def get_credentials_info() -> Dict[str, Any]:
    """
    Restituisce informazioni sul modulo credentials.

    Returns:
        Dict contenente informazioni dettagliate sul modulo
    """
    return {
        "name": "Academic Credentials System",
        "version": __version__,
        "components": {
            "models": "Data structures and GPA computation",
            "issuer": "Credential issuance system",
            "validator": "Credential verification system",
            "revocation": "Revocation registry"
        },
        "supported_standards": SUPPORTED_STANDARDS
    }


def validate_configuration(config_type: str, config: Dict[str, Any]) -> bool:
    """
    Valida una configurazione per issuer o verifier.

    Args:
        config_type: Tipo configurazione ("issuer" o "verifier")
        config: Dizionario configurazione da validare

    Returns:
        True se la configurazione è valida, False altrimenti
    """
    issues = []

    if config_type == "issuer":
        validity = config.get("default_validity_days")
        if validity is not None and validity <= 0:
            issues.append("default_validity_days deve essere > 0")

    elif config_type == "verifier":
        policies = [p.value for p in OriginalProofPolicy]
        if config.get("original_proof_policy", "cryptographic") not in policies:
            issues.append(f"original_proof_policy deve essere uno tra {policies}")
        if config.get("clock_skew_seconds", 0) < 0:
            issues.append("clock_skew_seconds non può essere negativo")

    else:
        issues.append(f"Tipo configurazione sconosciuto: {config_type}")

    if issues:
        logging.getLogger(__name__).warning("Problemi configurazione trovati: %s", issues)
        return False

    return True


def setup_credentials_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configura il sistema di logging per il modulo credentials.

    Args:
        level: Livello di logging (default: INFO)

    Returns:
        Logger configurato
    """
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
