# =============================================================================
# WALLET E DIVULGAZIONE SELETTIVA - STUDENT WALLET
# File: wallet/student_wallet.py
# Sistema Credenziali Accademiche Decentralizzate
# =============================================================================

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from crypto.exceptions import InputValidationError
from crypto.foundations import CryptoUtils
from credentials.models import Credential, CredentialLike


logger = logging.getLogger(__name__)


@dataclass
class WalletCredential:
    credential: Credential
    added_date: str
    tags: List[str] = field(default_factory=list)

    @property
    def storage_id(self) -> str:
        return self.credential.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.credential.id,
            'credential': self.credential.to_dict(),
            'added_date': self.added_date,
            'tags': list(self.tags)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WalletCredential':
        return cls(
            credential=Credential.from_dict(data['credential']),
            added_date=data['added_date'],
            tags=data.get('tags', [])
        )


@dataclass
class WalletConfiguration:
    collection: str = "wallet_credentials"
    verify_on_add: bool = False


class AcademicStudentWallet:
    """
    Collezione delle credenziali dello studente sopra il backend di storage.

    Se viene fornito un verificatore e verify_on_add è attivo, le
    credenziali non valide vengono rifiutate all'inserimento.
    """

    def __init__(self, storage, config: Optional[WalletConfiguration] = None, verifier=None):
        self.storage = storage
        self.config = config or WalletConfiguration()
        self.verifier = verifier
        self.credentials: Dict[str, WalletCredential] = {}

    def load(self) -> int:
        """Carica le credenziali salvate; restituisce il numero caricato."""
        self.credentials = {}
        for data in self.storage.get_all(self.config.collection):
            entry = WalletCredential.from_dict(data)
            self.credentials[entry.storage_id] = entry

        logger.info("Wallet caricato: %d credenziali", len(self.credentials))
        return len(self.credentials)

    def add_credential(self, credential: CredentialLike, tags: Optional[List[str]] = None) -> str:
        """
        Aggiunge una credenziale al wallet.

        Returns:
            Identificativo della credenziale

        Raises:
            InputValidationError: credenziale malformata o, con
                verify_on_add, non verificabile
        """
        if not isinstance(credential, Credential):
            try:
                credential = Credential.from_dict(credential)
            except ValueError as e:
                raise InputValidationError(f"Credenziale non valida: {e}")

        if self.config.verify_on_add and self.verifier is not None:
            report = self.verifier.verify_credential(credential)
            if not report.is_valid():
                raise InputValidationError(f"Credenziale rifiutata: {report.errors}")

        entry = WalletCredential(
            credential=credential,
            added_date=CryptoUtils.generate_secure_timestamp(),
            tags=tags or []
        )
        self.storage.save(self.config.collection, entry.to_dict())
        self.credentials[entry.storage_id] = entry

        logger.info("Credenziale aggiunta al wallet: %s", credential.id)
        return entry.storage_id

    def get_credential(self, credential_id: str) -> Optional[Credential]:
        entry = self.credentials.get(credential_id)
        return entry.credential if entry else None

    def list_credentials(self) -> List[Dict[str, Any]]:
        return [
            {**entry.credential.get_summary(), 'tags': entry.tags, 'added_date': entry.added_date}
            for entry in self.credentials.values()
        ]

    def get_my_credentials(self, did: str) -> List[Credential]:
        """Credenziali il cui soggetto è il DID indicato."""
        return [e.credential for e in self.credentials.values() if e.credential.subject_id == did]

    def delete_credential(self, credential_id: str) -> bool:
        existed = self.credentials.pop(credential_id, None) is not None
        existed = self.storage.delete(self.config.collection, credential_id) or existed
        if existed:
            logger.info("Credenziale rimossa dal wallet: %s", credential_id)
        return existed

    def get_statistics(self) -> Dict[str, Any]:
        issuers = {e.credential.issuer for e in self.credentials.values()}
        return {
            'total_credentials': len(self.credentials),
            'issuers_count': len(issuers),
            'last_activity': datetime.datetime.now(datetime.timezone.utc).isoformat()
        }
