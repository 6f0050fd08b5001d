"""
Modulo Wallet per la gestione del portafoglio digitale studenti
e la divulgazione selettiva delle credenziali accademiche.

Componenti principali:
- Storage: backend in memoria e su file cifrato
- Student Wallet: collezione delle credenziali dello studente
- Selective Disclosure: commitment e presentazioni selettive
- Predicates: prove di predicato e di intervallo (non zero-knowledge)
- Presentation Manager: presentazioni verificabili firmate

Utilizzo base:
    from wallet import InMemoryStorage, AcademicStudentWallet
    from wallet import SelectiveDisclosureManager

    wallet = AcademicStudentWallet(InMemoryStorage())
    wallet.add_credential(credential)

    manager = SelectiveDisclosureManager(resolver=did_manager)
    presentation = manager.create_selective_presentation(credential, ["degree", "gpa"])
    result = manager.verify_selective_presentation(presentation, credential)
"""

import logging
from typing import Any, Dict, List, Tuple

from .storage import (
    StorageBackend,
    InMemoryStorage,
    EncryptedFileStorage
)

from .student_wallet import (
    AcademicStudentWallet,
    WalletConfiguration,
    WalletCredential
)

from .selective_disclosure import (
    SelectiveDisclosureManager,
    SelectiveDisclosurePresentation,
    PresentationVerificationResult,
    DisclosureConfiguration,
    CommitmentCache,
    CommitmentRecord,
    CacheMode,
    create_commitment
)

from .predicates import (
    PredicateProof,
    PredicateProofStrategy,
    HashBindingStrategy,
    create_predicate_proof,
    create_range_proof,
    verify_predicate_opening
)

from .presentation import (
    PresentationManager,
    PresentationReport,
    VerifiablePresentation
)

# Versione del modulo
__version__ = "1.0.0"

__all__ = [
    # Storage
    "StorageBackend",
    "InMemoryStorage",
    "EncryptedFileStorage",

    # Student Wallet
    "AcademicStudentWallet",
    "WalletConfiguration",
    "WalletCredential",

    # Selective Disclosure
    "SelectiveDisclosureManager",
    "SelectiveDisclosurePresentation",
    "PresentationVerificationResult",
    "DisclosureConfiguration",
    "CommitmentCache",
    "CommitmentRecord",
    "CacheMode",
    "create_commitment",

    # Predicati
    "PredicateProof",
    "PredicateProofStrategy",
    "HashBindingStrategy",
    "create_predicate_proof",
    "create_range_proof",
    "verify_predicate_opening",

    # Presentation Manager
    "PresentationManager",
    "PresentationReport",
    "VerifiablePresentation"
]

# Configurazione consigliata per la divulgazione selettiva
RECOMMENDED_DISCLOSURE_CONFIG = {
    "cache_mode": "session",
    "cache_ttl_seconds": 3600,
    "cache_max_entries": 1024,
    "nonce_bytes": 16,
    "strict_reveal_set": False
}

# Attributi tipicamente rivelati per diversi scenari
DISCLOSURE_SCENARIOS = {
    "university_verification": {
        "description": "Verifica iscrizione università",
        "reveal": ["id", "institution"]
    },
    "academic_transcript": {
        "description": "Trascrizione accademica completa",
        "reveal": ["id", "name", "institution", "degree", "courses", "gpa"]
    },
    "job_application": {
        "description": "Candidatura lavorativa",
        "reveal": ["name", "institution", "degree"]
    },
    "scholarship_application": {
        "description": "Domanda borsa di studio",
        "reveal": ["id", "name", "institution", "degree", "gpa"]
    }
}


def get_wallet_info() -> Dict[str, Any]:
    """Informazioni sul modulo wallet"""
    return {
        "name": "Academic Credentials Digital Wallet",
        "version": __version__,
        "description": "Digital wallet for academic credentials with selective disclosure",
        "components": {
            "storage": "In-memory and encrypted file persistence",
            "student_wallet": "Credential collection of the holder",
            "selective_disclosure": "Hash-commitment attribute disclosure",
            "predicates": "Predicate and range statements (not zero-knowledge)",
            "presentation": "Holder-signed verifiable presentations"
        }
    }


def get_disclosure_template(scenario: str) -> Dict[str, Any]:
    """
    Ottiene template per scenario di divulgazione

    Args:
        scenario: Nome scenario (university_verification, academic_transcript, etc.)

    Returns:
        Template di divulgazione (vuoto se lo scenario non esiste)
    """
    return DISCLOSURE_SCENARIOS.get(scenario, {})


def validate_disclosure_config(config: DisclosureConfiguration) -> Tuple[bool, List[str]]:
    """
    Valida configurazione della divulgazione selettiva

    Returns:
        Tupla (valida, lista_errori)
    """
    errors = []

    if config.nonce_bytes < 16:
        errors.append("I nonce devono essere di almeno 16 byte")

    if config.cache_max_entries < 1:
        errors.append("Numero massimo di voci in cache deve essere >= 1")

    if config.cache_mode == CacheMode.TTL and config.cache_ttl_seconds <= 0:
        errors.append("TTL della cache deve essere > 0 secondi")

    return len(errors) == 0, errors


def setup_wallet_logging(level=logging.INFO):
    """Configura logging per il modulo wallet"""
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
