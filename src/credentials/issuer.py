"""
Sistema di emissione credenziali accademiche.

Questo modulo fornisce la funzionalità per:
- Costruzione della credenziale e calcolo della media (GPA)
- Firma digitale della forma canonica della credenziale
- Persistenza opzionale tramite il backend di storage
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from cryptography.hazmat.primitives.asymmetric import ec

from crypto.exceptions import InputValidationError, KeyUnavailableError
from crypto.foundations import CryptoUtils, DeterministicSerializer, DigitalSignature
from credentials.models import (
    CREDENTIAL_CONTEXT,
    CREDENTIAL_TYPE,
    PROOF_PURPOSE,
    PROOF_TYPE,
    Credential,
    CourseInput,
    Proof,
    build_credential_subject,
    expiration_from_validity
)
from identity.did_manager import KEY_REFERENCE


logger = logging.getLogger(__name__)


def create_proof(document: Any, private_key: ec.EllipticCurvePrivateKey, signer_did: str) -> Proof:
    """
    Firma la forma canonica di un documento (senza 'proof').

    Args:
        document: Credenziale o presentazione da firmare
        private_key: Chiave privata del firmatario
        signer_did: DID del firmatario

    Returns:
        Prova da allegare al documento
    """
    canonical_data = DeterministicSerializer.canonicalize(document)
    signature = DigitalSignature().sign_data(private_key, canonical_data)

    return Proof(
        type=PROOF_TYPE,
        created=CryptoUtils.generate_secure_timestamp(),
        verification_method=f"{signer_did}#{KEY_REFERENCE}",
        proof_purpose=PROOF_PURPOSE,
        signature_value=signature
    )


def issue_credential(issuer_did: str,
                     issuer_private_key: ec.EllipticCurvePrivateKey,
                     subject_did: str,
                     subject_name: str,
                     institution: str,
                     degree: str,
                     courses: Optional[Sequence[CourseInput]] = None,
                     expiration_date: Optional[datetime.datetime] = None) -> Credential:
    """
    Emette una credenziale accademica firmata.

    Args:
        issuer_did: DID dell'università
        issuer_private_key: Chiave privata di firma dell'università
        subject_did: DID dello studente
        subject_name: Nome dello studente
        institution: Nome dell'istituzione
        degree: Corso di laurea
        courses: Corsi sostenuti (lista vuota ammessa, GPA 0)
        expiration_date: Scadenza opzionale

    Returns:
        Credenziale con prova allegata

    Raises:
        KeyUnavailableError: se manca la chiave di firma
        InputValidationError: per dati di input non validi
        CryptoOperationError: se la firma fallisce
    """
    if not issuer_did:
        raise InputValidationError("Identificativo dell'issuer obbligatorio")
    if issuer_private_key is None:
        raise KeyUnavailableError("Chiave privata dell'issuer non disponibile")
    if subject_did == issuer_did:
        raise InputValidationError("Lo studente deve essere distinto dall'issuer")

    issued_at = datetime.datetime.now(datetime.timezone.utc)
    credential = Credential(
        context=list(CREDENTIAL_CONTEXT),
        id=f"urn:uuid:{CryptoUtils.generate_uuid()}",
        type=list(CREDENTIAL_TYPE),
        issuer=issuer_did,
        issuance_date=CryptoUtils.format_timestamp(issued_at),
        expiration_date=CryptoUtils.format_timestamp(expiration_date) if expiration_date else None,
        credential_subject=build_credential_subject(
            subject_did, subject_name, institution, degree, courses
        )
    )

    credential.proof = create_proof(credential, issuer_private_key, issuer_did)

    logger.info("Credenziale emessa: %s", credential.id)
    logger.debug("Studente: %s, Corsi: %d, GPA: %s",
                 subject_did, len(credential.credential_subject['courses']), credential.gpa)
    return credential


@dataclass
class IssuerConfiguration:
    """Configurazione per l'issuer di credenziali."""
    default_validity_days: Optional[int] = None
    persist_issued: bool = True
    collection: str = "credentials"
    private_key_password: Optional[str] = None


class AcademicCredentialIssuer:
    """
    Issuer per credenziali accademiche.

    Usa l'identità attiva del key provider per firmare, salva le
    credenziali emesse nello storage (se presente) e ne mantiene una
    copia in memoria.
    """

    def __init__(self, key_provider, storage=None, config: Optional[IssuerConfiguration] = None):
        """
        Inizializza l'issuer

        Args:
            key_provider: Fornisce DID attivo e chiave privata
            storage: Backend di persistenza opzionale
            config: Configurazione dell'issuer
        """
        self.key_provider = key_provider
        self.storage = storage
        self.config = config or IssuerConfiguration()

        self.credentials_db: Dict[str, Credential] = {}
        self.stats = {
            'credentials_issued': 0,
            'signing_operations': 0,
            'credentials_deleted': 0
        }

    def load(self) -> int:
        """Carica le credenziali già persistite; restituisce il numero caricato."""
        if self.storage is None:
            return 0

        for data in self.storage.get_all(self.config.collection):
            credential = Credential.from_dict(data)
            self.credentials_db[credential.id] = credential

        logger.info("Database caricato: %d credenziali", len(self.credentials_db))
        return len(self.credentials_db)

    def issue_credential(self,
                         subject_did: str,
                         subject_name: str,
                         institution: str,
                         degree: str,
                         courses: Optional[Sequence[CourseInput]] = None) -> Credential:
        """
        Emette e firma una credenziale con l'identità attiva.

        Raises:
            KeyUnavailableError: se non c'è un DID attivo
        """
        issuer_did = self.key_provider.get_active_did()
        private_key = self.key_provider.get_private_key(self.config.private_key_password)

        expiration = expiration_from_validity(
            datetime.datetime.now(datetime.timezone.utc), self.config.default_validity_days
        )

        credential = issue_credential(
            issuer_did, private_key, subject_did, subject_name,
            institution, degree, courses, expiration
        )
        self.stats['signing_operations'] += 1

        if self.storage is not None and self.config.persist_issued:
            self.storage.save(self.config.collection, credential.to_dict())

        self.credentials_db[credential.id] = credential
        self.stats['credentials_issued'] += 1
        return credential

    def get_credential(self, credential_id: str) -> Optional[Credential]:
        """Ottiene una credenziale per ID."""
        return self.credentials_db.get(credential_id)

    def list_credentials(self) -> List[Dict[str, Any]]:
        """Riassunti delle credenziali emesse."""
        return [c.get_summary() for c in self.credentials_db.values()]

    def delete_credential(self, credential_id: str) -> bool:
        """
        Elimina una credenziale da memoria e storage.

        Returns:
            True se la credenziale esisteva
        """
        existed = self.credentials_db.pop(credential_id, None) is not None
        if self.storage is not None:
            existed = self.storage.delete(self.config.collection, credential_id) or existed

        if existed:
            self.stats['credentials_deleted'] += 1
            logger.info("Credenziale eliminata: %s", credential_id)
        return existed

    def get_statistics(self) -> Dict[str, Any]:
        """Statistiche operative dell'issuer."""
        return {
            **self.stats,
            'total_credentials': len(self.credentials_db)
        }
