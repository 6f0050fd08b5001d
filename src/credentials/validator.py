"""
Sistema di verifica credenziali accademiche.

Questo modulo fornisce la funzionalità per:
- Validazione della struttura della credenziale
- Risoluzione del DID dell'issuer nella chiave pubblica
- Verifica della firma sulla forma canonica
- Controllo di scadenza e revoca

La verifica non solleva eccezioni per credenziali non valide:
restituisce sempre un report con i singoli controlli e gli errori.
"""

import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives.asymmetric import ec

from crypto.exceptions import CryptoOperationError, InputValidationError
from crypto.foundations import CryptoUtils, DeterministicSerializer, DigitalSignature
from credentials.models import CredentialLike, credential_to_dict


logger = logging.getLogger(__name__)


class OriginalProofPolicy(Enum):
    """Come verificare la firma originale in una presentazione selettiva."""
    CRYPTOGRAPHIC = "cryptographic"   # Riverifica la firma dell'issuer
    PRESENCE_ONLY = "presence_only"   # Solo presenza di issuer e originalProof


@dataclass
class VerifierConfiguration:
    """Configurazione per il verificatore."""
    original_proof_policy: OriginalProofPolicy = OriginalProofPolicy.CRYPTOGRAPHIC
    clock_skew_seconds: int = 0


@dataclass
class CredentialVerificationResult:
    """Report della verifica di una credenziale."""
    verified: bool = False
    checks: Dict[str, bool] = field(default_factory=lambda: {
        'structure': False,
        'signature': False,
        'expiration': True,
        'revocation': True
    })
    issuer: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def is_valid(self) -> bool:
        return self.verified

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'verified': self.verified,
            'checks': dict(self.checks),
            'issuer': self.issuer,
            'errors': list(self.errors)
        }


def verify_document_signature(document: Dict[str, Any],
                              public_key: ec.EllipticCurvePublicKey,
                              expected_signer: Optional[str] = None) -> bool:
    """
    Verifica la prova allegata a un documento JSON.

    Args:
        document: Documento con campo 'proof'
        public_key: Chiave pubblica del firmatario
        expected_signer: DID atteso nel verificationMethod (opzionale)

    Returns:
        True se la firma è valida
    """
    proof = document.get('proof')
    if not isinstance(proof, dict):
        return False

    signature = proof.get('signatureValue')
    if not isinstance(signature, str):
        return False

    if expected_signer is not None:
        method = proof.get('verificationMethod')
        if not isinstance(method, str) or method.split('#', 1)[0] != expected_signer:
            logger.warning("verificationMethod non riferito a %s", expected_signer)
            return False

    try:
        canonical_data = DeterministicSerializer.canonicalize(document)
    except InputValidationError as e:
        logger.warning("Canonicalizzazione fallita: %s", e)
        return False

    return DigitalSignature().verify_signature(public_key, canonical_data, signature)


def _check_expiration(data: Dict[str, Any], result: CredentialVerificationResult,
                      now: datetime.datetime, clock_skew_seconds: int) -> None:
    expiration = data.get('expirationDate')
    if expiration is None:
        return

    try:
        expires_at = CryptoUtils.parse_timestamp(expiration)
    except InputValidationError as e:
        result.checks['expiration'] = False
        result.add_error(f"Data di scadenza non valida: {e}")
        return

    if now > expires_at + datetime.timedelta(seconds=clock_skew_seconds):
        result.checks['expiration'] = False
        result.add_error(f"Credenziale scaduta il {expiration}")


def verify_credential(credential: CredentialLike,
                      resolver,
                      revocation_registry=None,
                      now: Optional[datetime.datetime] = None,
                      config: Optional[VerifierConfiguration] = None) -> CredentialVerificationResult:
    """
    Verifica una credenziale.

    Args:
        credential: Credenziale (modello o dizionario JSON)
        resolver: Collaboratore che risolve DID -> chiave pubblica
        revocation_registry: Registro delle revoche opzionale
        now: Istante di riferimento per la scadenza (default: adesso)
        config: Configurazione del verificatore

    Returns:
        Report con controlli structure/signature/expiration/revocation
    """
    config = config or VerifierConfiguration()
    result = CredentialVerificationResult()

    try:
        data = credential_to_dict(credential)
    except InputValidationError as e:
        result.add_error(str(e))
        return result

    # 1. Struttura
    if not data.get('proof') or not data.get('credentialSubject') or not data.get('issuer'):
        result.add_error("Struttura credenziale non valida: proof, credentialSubject e issuer sono obbligatori")
        return result
    result.checks['structure'] = True
    result.issuer = data['issuer']

    # 2. Risoluzione issuer
    public_key = resolver.resolve_public_key(data['issuer'])
    if public_key is None:
        result.add_error(f"Issuer non trovato: impossibile risolvere la chiave pubblica di {data['issuer']}")
        logger.warning("Issuer non risolvibile: %s", data['issuer'])
        return result

    # 3. Firma
    try:
        result.checks['signature'] = verify_document_signature(data, public_key, data['issuer'])
    except CryptoOperationError as e:
        result.checks['signature'] = False
        result.add_error(f"Errore nella verifica della firma: {e}")
    if not result.checks['signature']:
        result.add_error("Verifica firma fallita")

    # 4. Scadenza e revoca
    _check_expiration(data, result, now or datetime.datetime.now(datetime.timezone.utc),
                      config.clock_skew_seconds)

    if revocation_registry is not None and revocation_registry.is_revoked(data.get('id')):
        result.checks['revocation'] = False
        result.add_error(f"Credenziale revocata: {data.get('id')}")

    result.verified = all(result.checks.values())

    if result.verified:
        logger.info("Credenziale verificata: %s", data.get('id'))
    else:
        logger.warning("Credenziale NON valida: %s (%d errori)", data.get('id'), len(result.errors))

    return result


class AcademicCredentialVerifier:
    """
    Verificatore per credenziali accademiche.

    Raccoglie i collaboratori necessari (risoluzione DID, registro
    revoche) e tiene statistiche delle verifiche effettuate.
    """

    def __init__(self, resolver, revocation_registry=None,
                 config: Optional[VerifierConfiguration] = None):
        self.resolver = resolver
        self.revocation_registry = revocation_registry
        self.config = config or VerifierConfiguration()
        self.stats = {
            'verifications': 0,
            'valid': 0,
            'invalid': 0
        }

    def verify_credential(self, credential: CredentialLike,
                          now: Optional[datetime.datetime] = None) -> CredentialVerificationResult:
        result = verify_credential(
            credential, self.resolver, self.revocation_registry, now, self.config
        )

        self.stats['verifications'] += 1
        self.stats['valid' if result.verified else 'invalid'] += 1
        return result

    def verify_batch(self, credentials: List[CredentialLike]) -> List[CredentialVerificationResult]:
        """Verifica una lista di credenziali."""
        return [self.verify_credential(c) for c in credentials]

    def get_statistics(self) -> Dict[str, Any]:
        return dict(self.stats)
