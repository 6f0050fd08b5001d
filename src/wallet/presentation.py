"""
Presentazioni verificabili firmate dallo studente.

Una presentazione raccoglie una o più credenziali complete del wallet e
viene firmata con la chiave dell'identità attiva dello studente. Il
verificatore controlla la firma dello studente e, separatamente, ogni
credenziale incorporata.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from crypto.exceptions import CryptoOperationError, InputValidationError, KeyUnavailableError
from crypto.foundations import CryptoUtils
from credentials.issuer import create_proof
from credentials.models import Credential, Proof, credential_to_dict
from credentials.validator import CredentialVerificationResult, verify_credential, verify_document_signature


logger = logging.getLogger(__name__)

VP_CONTEXT = ["https://www.w3.org/2018/credentials/v1"]
VP_TYPE = ["VerifiablePresentation"]


class VerifiablePresentation(BaseModel):
    """Presentazione di credenziali complete firmata dallo studente."""
    model_config = ConfigDict(populate_by_name=True)

    context: List[str] = Field(default_factory=lambda: list(VP_CONTEXT), alias="@context")
    type: List[str] = Field(default_factory=lambda: list(VP_TYPE))
    id: str
    holder: str
    verifiable_credential: List[Dict[str, Any]] = Field(..., alias="verifiableCredential")
    created: str
    proof: Optional[Proof] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, **kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VerifiablePresentation':
        return cls.model_validate(data)

    def get_summary(self) -> Dict[str, Any]:
        """Riassunto veloce del contenuto della presentazione."""
        return {
            'presentation_id': self.id,
            'holder': self.holder,
            'total_credentials': len(self.verifiable_credential),
            'issuers': sorted({c.get('issuer') for c in self.verifiable_credential if c.get('issuer')}),
            'is_signed': self.proof is not None
        }


@dataclass
class PresentationReport:
    """Report della verifica di una presentazione verificabile."""
    verified: bool = False
    checks: Dict[str, bool] = field(default_factory=lambda: {
        'structure': False,
        'signature': False,
        'holder': False,
        'credentials': False
    })
    holder: Optional[str] = None
    credential_results: List[CredentialVerificationResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def is_valid(self) -> bool:
        return self.verified

    def to_dict(self) -> Dict[str, Any]:
        return {
            'verified': self.verified,
            'checks': dict(self.checks),
            'holder': self.holder,
            'credentials': [r.to_dict() for r in self.credential_results],
            'errors': list(self.errors)
        }


CredentialRef = Union[str, Credential, Dict[str, Any]]


class PresentationManager:
    """
    Crea e verifica presentazioni verificabili.

    Il key provider fornisce l'identità dello studente, il resolver le
    chiavi pubbliche di studenti e università.
    """

    def __init__(self, key_provider=None, resolver=None, wallet=None, revocation_registry=None):
        self.key_provider = key_provider
        self.resolver = resolver
        self.wallet = wallet
        self.revocation_registry = revocation_registry

    def _resolve_credentials(self, credentials: Sequence[CredentialRef]) -> List[Dict[str, Any]]:
        resolved = []
        for item in credentials:
            if isinstance(item, str):
                credential = self.wallet.get_credential(item) if self.wallet is not None else None
                if credential is None:
                    raise InputValidationError(f"Credenziale non trovata nel wallet: {item}")
                item = credential
            resolved.append(credential_to_dict(item))
        return resolved

    def create_presentation(self, credentials: Sequence[CredentialRef],
                            holder_did: Optional[str] = None,
                            password: Optional[str] = None) -> VerifiablePresentation:
        """
        Crea una presentazione firmata dall'identità attiva.

        Args:
            credentials: Credenziali o loro identificativi nel wallet
            holder_did: DID dello studente (default: identità attiva)
            password: Password della chiave privata, se cifrata

        Raises:
            InputValidationError: nessuna credenziale o identificativo sconosciuto
            KeyUnavailableError: nessuna identità attiva o holder diverso da essa
        """
        if self.key_provider is None:
            raise KeyUnavailableError("Nessun key provider configurato")

        active_did = self.key_provider.get_active_did()
        holder_did = holder_did or active_did
        if holder_did != active_did:
            raise KeyUnavailableError(f"Nessuna chiave di firma disponibile per {holder_did}")

        embedded = self._resolve_credentials(credentials)
        if not embedded:
            raise InputValidationError("Nessuna credenziale da presentare")

        presentation = VerifiablePresentation(
            id=f"urn:uuid:{CryptoUtils.generate_uuid()}",
            holder=holder_did,
            verifiable_credential=embedded,
            created=CryptoUtils.generate_secure_timestamp()
        )
        private_key = self.key_provider.get_private_key(password)
        presentation.proof = create_proof(presentation, private_key, holder_did)

        logger.info("Presentazione creata: %s (%d credenziali)", presentation.id, len(embedded))
        return presentation

    def verify_presentation(self, presentation: Union[VerifiablePresentation, Dict[str, Any]]) -> PresentationReport:
        """
        Verifica firma dello studente e ogni credenziale incorporata.

        Non solleva eccezioni per presentazioni non valide.
        """
        if self.resolver is None:
            raise KeyUnavailableError("Nessun resolver configurato per la verifica")

        report = PresentationReport()
        data = presentation.to_dict() if isinstance(presentation, VerifiablePresentation) else presentation

        holder = data.get('holder') if isinstance(data, dict) else None
        embedded = data.get('verifiableCredential') if isinstance(data, dict) else None
        if not holder or not isinstance(embedded, list) or not embedded or not data.get('proof'):
            report.errors.append("Struttura presentazione non valida: holder, verifiableCredential e proof sono obbligatori")
            return report
        report.checks['structure'] = True
        report.holder = holder

        public_key = self.resolver.resolve_public_key(holder)
        if public_key is None:
            report.errors.append(f"Holder non trovato: impossibile risolvere la chiave pubblica di {holder}")
        else:
            try:
                report.checks['signature'] = verify_document_signature(data, public_key, holder)
            except CryptoOperationError as e:
                report.errors.append(f"Errore nella verifica della firma dello studente: {e}")
            if not report.checks['signature']:
                report.errors.append("Firma dello studente non valida")

        report.checks['holder'] = True
        report.checks['credentials'] = True
        for index, credential in enumerate(embedded):
            result = verify_credential(credential, self.resolver, self.revocation_registry)
            report.credential_results.append(result)
            if not result.verified:
                report.checks['credentials'] = False
                report.errors.extend(f"Credenziale {index}: {err}" for err in result.errors)

            subject = credential.get('credentialSubject') if isinstance(credential, dict) else None
            if not isinstance(subject, dict) or subject.get('id') != holder:
                report.checks['holder'] = False
                report.errors.append(f"Credenziale {index}: il soggetto non è l'holder della presentazione")

        report.verified = all(report.checks.values())
        if not report.verified:
            logger.warning("Presentazione NON valida: %s", report.errors)
        return report
