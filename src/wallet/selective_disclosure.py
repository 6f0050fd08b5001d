"""
Divulgazione selettiva basata su commitment hash.

Ogni attributo di primo livello del credentialSubject viene vincolato con
commitment = SHA-256(serialize(valore) + nonce). Lo studente rivela gli
attributi scelti insieme alla loro apertura (valore, nonce) e fornisce solo
il commitment per quelli nascosti.

Lo schema NON è zero-knowledge: i nomi degli attributi nascosti, il loro
numero e (con la cache attiva) i commitment stessi sono visibili e
collegabili tra presentazioni diverse della stessa credenziale.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from crypto.exceptions import CommitmentMismatchError, CryptoOperationError, InputValidationError
from crypto.foundations import CryptoUtils, DeterministicSerializer
from credentials.models import CREDENTIAL_CONTEXT, CREDENTIAL_TYPE, CredentialLike, credential_to_dict
from credentials.validator import OriginalProofPolicy, VerifierConfiguration, verify_document_signature


logger = logging.getLogger(__name__)

PRESENTATION_CONTEXT = ["https://www.w3.org/2018/credentials/v1"]
PRESENTATION_TYPE = ["VerifiablePresentation", "SelectiveDisclosurePresentation"]


def create_commitment(value: Any, nonce: str) -> str:
    """
    Calcola il commitment di un valore.

    Args:
        value: Valore dell'attributo (qualsiasi tipo JSON)
        nonce: Apertura casuale in esadecimale

    Returns:
        Digest SHA-256 esadecimale di serialize(value) + nonce
    """
    if not isinstance(nonce, str):
        raise InputValidationError("Il nonce deve essere una stringa esadecimale")
    data = DeterministicSerializer.serialize(value) + nonce
    return CryptoUtils.sha256_hash(data.encode('utf-8'))


def _same_value(a: Any, b: Any) -> bool:
    try:
        return DeterministicSerializer.serialize(a) == DeterministicSerializer.serialize(b)
    except InputValidationError:
        return False


# 1. STRUTTURE DATI

class CacheMode(Enum):
    """Politica di riuso dei commitment tra presentazioni."""
    NONE = "none"          # Nonce nuovi a ogni presentazione
    SESSION = "session"    # Riuso per la durata del processo (LRU limitata)
    TTL = "ttl"            # Riuso fino alla scadenza


@dataclass
class DisclosureConfiguration:
    """Configurazione del motore di divulgazione selettiva."""
    cache_mode: CacheMode = CacheMode.SESSION
    cache_ttl_seconds: int = 3600
    cache_max_entries: int = 1024
    nonce_bytes: int = 16
    strict_reveal_set: bool = False


class CommitmentRecord(BaseModel):
    """Commitment e aperture di tutti gli attributi di una credenziale."""
    model_config = ConfigDict(populate_by_name=True)

    credential_id: str = Field(..., alias="credentialId")
    attributes: Dict[str, str] = Field(default_factory=dict, description="nome -> commitment")
    nonces: Dict[str, str] = Field(default_factory=dict, description="nome -> nonce")

    def matches(self, subject: Dict[str, Any]) -> bool:
        """True se il record apre esattamente i valori del soggetto."""
        if list(self.attributes.keys()) != list(subject.keys()):
            return False
        return all(
            create_commitment(subject[name], self.nonces[name]) == digest
            for name, digest in self.attributes.items()
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True)


class AttributeOpening(BaseModel):
    """Apertura di un attributo rivelato."""
    value: Any
    nonce: str
    commitment: str


class SelectiveDisclosurePresentation(BaseModel):
    """Presentazione che rivela un sottoinsieme degli attributi."""
    model_config = ConfigDict(populate_by_name=True)

    context: List[str] = Field(default_factory=lambda: list(PRESENTATION_CONTEXT), alias="@context")
    type: List[str] = Field(default_factory=lambda: list(PRESENTATION_TYPE))
    id: str
    credential_id: str = Field(..., alias="credentialId")
    issuer: str
    issuance_date: str = Field(..., alias="issuanceDate")
    expiration_date: Optional[str] = Field(None, alias="expirationDate")
    original_proof: Dict[str, Any] = Field(..., alias="originalProof")
    disclosed_attributes: Dict[str, Any] = Field(default_factory=dict, alias="disclosedAttributes")
    commitments: Dict[str, str] = Field(default_factory=dict)
    proofs: Dict[str, AttributeOpening] = Field(default_factory=dict)
    hidden_attribute_count: int = Field(0, alias="hiddenAttributeCount")
    revealed_attribute_count: int = Field(0, alias="revealedAttributeCount")

    def to_dict(self) -> Dict[str, Any]:
        """Converte la presentazione nel formato di interscambio."""
        return self.model_dump(mode='json', by_alias=True, exclude=self._omitted_fields())

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(by_alias=True, exclude=self._omitted_fields(), **kwargs)

    def _omitted_fields(self) -> Optional[set]:
        # Solo la scadenza è opzionale: i valori null degli attributi restano
        return {'expiration_date'} if self.expiration_date is None else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SelectiveDisclosurePresentation':
        return cls.model_validate(data)


@dataclass
class PresentationVerificationResult:
    """Report della verifica di una presentazione selettiva."""
    verified: bool = False
    checks: Dict[str, bool] = field(default_factory=lambda: {
        'structure': False,
        'commitments': False,
        'originalSignature': False
    })
    disclosed_attributes: Dict[str, Any] = field(default_factory=dict)
    hidden_count: int = 0
    errors: List[str] = field(default_factory=list)
    mismatches: List[CommitmentMismatchError] = field(default_factory=list)

    def is_valid(self) -> bool:
        return self.verified

    def add_mismatch(self, error: CommitmentMismatchError) -> None:
        self.mismatches.append(error)
        self.errors.append(str(error))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'verified': self.verified,
            'checks': dict(self.checks),
            'disclosedAttributes': dict(self.disclosed_attributes),
            'hiddenCount': self.hidden_count,
            'errors': list(self.errors)
        }


# 2. CACHE DEI COMMITMENT

class CommitmentCache:
    """
    Cache dei commitment per credential id.

    SESSION riusa gli stessi commitment per la stessa credenziale nello
    stesso processo, con un limite LRU. TTL aggiunge la scadenza, NONE
    disattiva il riuso.
    """

    def __init__(self, mode: CacheMode = CacheMode.SESSION, ttl_seconds: int = 3600,
                 max_entries: int = 1024, clock: Callable[[], float] = time.monotonic):
        if max_entries <= 0:
            raise InputValidationError("cache_max_entries deve essere > 0")
        if mode == CacheMode.TTL and ttl_seconds <= 0:
            raise InputValidationError("cache_ttl_seconds deve essere > 0")

        self.mode = mode
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: 'OrderedDict[str, tuple]' = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.mode != CacheMode.NONE

    def get(self, credential_id: str) -> Optional[CommitmentRecord]:
        if not self.enabled:
            return None

        with self._lock:
            entry = self._entries.get(credential_id)
            if entry is None:
                return None

            record, stored_at = entry
            if self.mode == CacheMode.TTL and self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[credential_id]
                logger.debug("Commitment scaduti per %s", credential_id)
                return None

            self._entries.move_to_end(credential_id)
            return record

    def put(self, record: CommitmentRecord) -> None:
        if not self.enabled:
            return

        with self._lock:
            self._entries[record.credential_id] = (record, self._clock())
            self._entries.move_to_end(record.credential_id)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Commitment rimossi dalla cache: %s", evicted)

    def invalidate(self, credential_id: str) -> bool:
        with self._lock:
            return self._entries.pop(credential_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# 3. SELECTIVE DISCLOSURE MANAGER

def _subject_of(data: Dict[str, Any]) -> Dict[str, Any]:
    subject = data.get('credentialSubject')
    if not isinstance(subject, dict) or not subject:
        raise InputValidationError("credentialSubject mancante o vuoto")
    return subject


def _presentation_to_dict(presentation: Any) -> Dict[str, Any]:
    if isinstance(presentation, SelectiveDisclosurePresentation):
        return presentation.to_dict()
    if isinstance(presentation, dict):
        return presentation
    raise InputValidationError(f"Presentazione non supportata: {type(presentation).__name__}")


class SelectiveDisclosureManager:
    """Manager per la divulgazione selettiva delle credenziali"""

    def __init__(self, config: Optional[DisclosureConfiguration] = None, resolver=None,
                 verifier_config: Optional[VerifierConfiguration] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Inizializza il manager

        Args:
            config: Configurazione di cache e reveal set
            resolver: Risoluzione DID -> chiave pubblica (per la verifica)
            verifier_config: Politica di verifica della firma originale
            clock: Orologio monotono usato dalla cache TTL
        """
        self.config = config or DisclosureConfiguration()
        self.resolver = resolver
        self.verifier_config = verifier_config or VerifierConfiguration()
        self.cache = CommitmentCache(
            self.config.cache_mode,
            self.config.cache_ttl_seconds,
            self.config.cache_max_entries,
            clock
        )
        self.stats = {
            'commitments_created': 0,
            'cache_hits': 0,
            'presentations_created': 0,
            'presentations_verified': 0
        }

        logger.info("Selective Disclosure Manager inizializzato (cache: %s)", self.config.cache_mode.value)

    def create_commitment(self, value: Any, nonce: str) -> str:
        return create_commitment(value, nonce)

    def create_commitments(self, credential: CredentialLike) -> CommitmentRecord:
        """
        Genera commitment con nonce nuovi per ogni attributo del soggetto.

        Il record viene salvato in cache se la cache è attiva.
        """
        data = credential_to_dict(credential)
        credential_id = data.get('id')
        if not credential_id:
            raise InputValidationError("Identificativo della credenziale obbligatorio")

        attributes = {}
        nonces = {}
        for name, value in _subject_of(data).items():
            nonce = CryptoUtils.generate_nonce(self.config.nonce_bytes)
            attributes[name] = create_commitment(value, nonce)
            nonces[name] = nonce

        record = CommitmentRecord(credential_id=credential_id, attributes=attributes, nonces=nonces)
        self.cache.put(record)
        self.stats['commitments_created'] += 1

        logger.debug("Commitment creati per %s: %d attributi", credential_id, len(attributes))
        return record

    def _ensure_commitments(self, data: Dict[str, Any]) -> CommitmentRecord:
        cached = self.cache.get(data['id'])
        if cached is not None and cached.matches(data['credentialSubject']):
            self.stats['cache_hits'] += 1
            return cached
        return self.create_commitments(data)

    def create_selective_presentation(self, credential: CredentialLike,
                                      reveal: Iterable[str]) -> SelectiveDisclosurePresentation:
        """
        Crea una presentazione che rivela solo gli attributi richiesti.

        Args:
            credential: Credenziale firmata
            reveal: Nomi degli attributi da rivelare (anche vuoto)

        Returns:
            Presentazione con aperture per gli attributi rivelati e
            commitment per quelli nascosti

        Raises:
            InputValidationError: credenziale incompleta o, con
                strict_reveal_set, nomi di attributi sconosciuti
        """
        if isinstance(reveal, str):
            raise InputValidationError("Il reveal set deve essere una collezione di nomi, non una stringa")

        data = credential_to_dict(credential)
        for required in ('id', 'issuer', 'issuanceDate', 'proof'):
            if not data.get(required):
                raise InputValidationError(f"Campo obbligatorio mancante nella credenziale: {required}")
        subject = _subject_of(data)

        reveal_set = set(reveal)
        unknown = sorted(reveal_set - set(subject.keys()))
        if unknown:
            if self.config.strict_reveal_set:
                raise InputValidationError(f"Attributi sconosciuti nel reveal set: {', '.join(unknown)}")
            logger.warning("Attributi sconosciuti ignorati: %s", unknown)

        record = self._ensure_commitments(data)

        disclosed = {}
        proofs = {}
        commitments = {}
        for name, value in subject.items():
            if name in reveal_set:
                disclosed[name] = value
                proofs[name] = AttributeOpening(
                    value=value,
                    nonce=record.nonces[name],
                    commitment=record.attributes[name]
                )
            else:
                commitments[name] = record.attributes[name]

        presentation = SelectiveDisclosurePresentation(
            id=f"urn:uuid:{CryptoUtils.generate_uuid()}",
            credential_id=data['id'],
            issuer=data['issuer'],
            issuance_date=data['issuanceDate'],
            expiration_date=data.get('expirationDate'),
            original_proof=dict(data['proof']),
            disclosed_attributes=disclosed,
            commitments=commitments,
            proofs=proofs,
            hidden_attribute_count=len(commitments),
            revealed_attribute_count=len(disclosed)
        )

        self.stats['presentations_created'] += 1
        logger.info("Presentazione selettiva creata per %s: %d rivelati, %d nascosti",
                    data['id'], len(disclosed), len(commitments))
        return presentation

    def verify_selective_presentation(self, presentation: Any,
                                      credential: Optional[CredentialLike] = None) -> PresentationVerificationResult:
        """
        Verifica una presentazione selettiva.

        Args:
            presentation: Presentazione (modello o dizionario JSON)
            credential: Credenziale completa ottenuta fuori banda (opzionale),
                necessaria per riverificare la firma quando ci sono
                attributi nascosti

        Returns:
            Report con controlli structure/commitments/originalSignature
        """
        result = PresentationVerificationResult()
        self.stats['presentations_verified'] += 1

        try:
            data = _presentation_to_dict(presentation)
        except InputValidationError as e:
            result.errors.append(str(e))
            return result

        # 1. Struttura
        disclosed = data.get('disclosedAttributes')
        proofs = data.get('proofs')
        if not isinstance(disclosed, dict) or not isinstance(proofs, dict) or not data.get('originalProof'):
            result.errors.append("Struttura presentazione non valida")
            return result

        commitments = data.get('commitments') or {}
        result.checks['structure'] = self._check_structure(data, disclosed, proofs, commitments, result)
        if not isinstance(commitments, dict):
            commitments = {}

        # 2. Commitment degli attributi rivelati
        result.checks['commitments'] = self._check_commitments(disclosed, proofs, result)
        result.hidden_count = data.get('hiddenAttributeCount') or 0

        # 3. Firma originale
        result.checks['originalSignature'] = self._check_original_signature(
            data, disclosed, commitments, credential, result
        )

        result.verified = all(result.checks.values())

        if result.verified:
            logger.info("Presentazione selettiva verificata: %d rivelati, %d nascosti",
                        len(result.disclosed_attributes), result.hidden_count)
        else:
            logger.warning("Presentazione selettiva NON valida: %s", result.errors)
        return result

    def _check_structure(self, data: Dict[str, Any], disclosed: Dict[str, Any],
                         proofs: Dict[str, Any], commitments: Any,
                         result: PresentationVerificationResult) -> bool:
        valid = True

        if not isinstance(commitments, dict):
            result.errors.append("Il campo commitments deve essere un oggetto")
            return False

        if set(disclosed.keys()) != set(proofs.keys()):
            result.errors.append("Gli attributi divulgati non corrispondono alle prove")
            valid = False

        overlap = sorted(set(commitments.keys()) & set(proofs.keys()))
        if overlap:
            result.errors.append(f"Attributi sia rivelati che nascosti: {', '.join(overlap)}")
            valid = False

        hidden = data.get('hiddenAttributeCount')
        if hidden is not None and hidden != len(commitments):
            result.errors.append("hiddenAttributeCount non corrisponde ai commitment")
            valid = False

        revealed = data.get('revealedAttributeCount')
        if revealed is not None and revealed != len(proofs):
            result.errors.append("revealedAttributeCount non corrisponde alle prove")
            valid = False

        return valid

    def _check_commitments(self, disclosed: Dict[str, Any], proofs: Dict[str, Any],
                           result: PresentationVerificationResult) -> bool:
        all_valid = True

        for name, opening in proofs.items():
            if not isinstance(opening, dict) or not {'value', 'nonce', 'commitment'} <= set(opening):
                result.add_mismatch(CommitmentMismatchError(name, f"Prova malformata per l'attributo: {name}"))
                all_valid = False
                continue

            try:
                recomputed = create_commitment(opening['value'], opening['nonce'])
            except InputValidationError:
                recomputed = None

            if recomputed is None or not CryptoUtils.secure_compare(recomputed, opening['commitment']):
                result.add_mismatch(CommitmentMismatchError(name))
                all_valid = False
                continue

            if name in disclosed and not _same_value(disclosed[name], opening['value']):
                result.add_mismatch(CommitmentMismatchError(
                    name, f"Valore divulgato diverso dalla prova per l'attributo: {name}"
                ))
                all_valid = False
                continue

            result.disclosed_attributes[name] = opening['value']
            logger.debug("Commitment verificato: %s", name)

        return all_valid

    def _check_original_signature(self, data: Dict[str, Any], disclosed: Dict[str, Any],
                                  commitments: Any, credential: Optional[CredentialLike],
                                  result: PresentationVerificationResult) -> bool:
        issuer = data.get('issuer')
        original_proof = data.get('originalProof')

        if self.verifier_config.original_proof_policy == OriginalProofPolicy.PRESENCE_ONLY:
            if issuer and original_proof:
                return True
            result.errors.append("Issuer o firma originale mancanti")
            return False

        if not issuer:
            result.errors.append("Issuer mancante nella presentazione")
            return False
        if self.resolver is None:
            result.errors.append("Nessun resolver configurato: impossibile verificare la firma originale")
            return False

        public_key = self.resolver.resolve_public_key(issuer)
        if public_key is None:
            result.errors.append(f"Issuer non trovato: impossibile risolvere la chiave pubblica di {issuer}")
            return False

        if credential is not None:
            signed = self._match_full_credential(data, disclosed, commitments, credential, result)
        elif isinstance(commitments, dict) and not commitments:
            signed = self._reconstruct_credential(data, disclosed)
        else:
            result.errors.append(
                "Firma originale non verificabile: attributi nascosti e credenziale completa non fornita"
            )
            return False

        if signed is None:
            return False

        try:
            valid = verify_document_signature(signed, public_key, issuer)
        except CryptoOperationError as e:
            result.errors.append(f"Errore nella verifica della firma originale: {e}")
            return False

        if not valid:
            result.errors.append("Verifica firma originale fallita")
            return False
        return True

    @staticmethod
    def _reconstruct_credential(data: Dict[str, Any], disclosed: Dict[str, Any]) -> Dict[str, Any]:
        """Ricostruisce la credenziale firmata da una presentazione che rivela tutto."""
        signed = {
            '@context': list(CREDENTIAL_CONTEXT),
            'id': data.get('credentialId'),
            'type': list(CREDENTIAL_TYPE),
            'issuer': data.get('issuer'),
            'issuanceDate': data.get('issuanceDate'),
            'credentialSubject': dict(disclosed),
            'proof': data.get('originalProof')
        }
        if data.get('expirationDate') is not None:
            signed['expirationDate'] = data['expirationDate']
        return signed

    @staticmethod
    def _match_full_credential(data: Dict[str, Any], disclosed: Dict[str, Any], commitments: Any,
                               credential: CredentialLike,
                               result: PresentationVerificationResult) -> Optional[Dict[str, Any]]:
        """Controlla che la credenziale fuori banda sia quella presentata."""
        try:
            full = credential_to_dict(credential)
        except InputValidationError as e:
            result.errors.append(str(e))
            return None

        subject = full.get('credentialSubject') or {}
        mismatches = []
        if full.get('id') != data.get('credentialId'):
            mismatches.append('id')
        if full.get('issuer') != data.get('issuer'):
            mismatches.append('issuer')
        if full.get('issuanceDate') != data.get('issuanceDate'):
            mismatches.append('issuanceDate')
        if not _same_value(full.get('proof'), data.get('originalProof')):
            mismatches.append('proof')
        if set(subject.keys()) != set(disclosed.keys()) | set(commitments.keys()):
            mismatches.append('credentialSubject')
        mismatches.extend(
            name for name, value in disclosed.items()
            if name not in subject or not _same_value(subject[name], value)
        )

        if mismatches:
            result.errors.append(
                f"La credenziale fornita non corrisponde alla presentazione: {', '.join(mismatches)}"
            )
            return None
        return full

    def get_presentation_summary(self, presentation: Any) -> Dict[str, Any]:
        """Riassunto di cosa è rivelato e cosa è nascosto."""
        data = _presentation_to_dict(presentation)
        return {
            'revealed': list((data.get('disclosedAttributes') or {}).keys()),
            'hidden': list((data.get('commitments') or {}).keys()),
            'totalAttributes': (data.get('revealedAttributeCount') or 0) + (data.get('hiddenAttributeCount') or 0)
        }

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Cache dei commitment svuotata")

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'cached_credentials': len(self.cache)
        }
