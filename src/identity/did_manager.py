"""
Gestione degli identificativi decentralizzati (DID) e delle chiavi di firma.

Supporta il metodo did:key semplificato: l'identificativo contiene il punto
pubblico P-256 non compresso in esadecimale, preceduto da 'z'. Il manager
funge da collaboratore del core per due operazioni:

- fornire la chiave privata dell'identità attiva (issuer o holder)
- risolvere un identificativo nella relativa chiave pubblica
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel, Field, field_validator

from crypto.exceptions import CryptoOperationError, InputValidationError, KeyUnavailableError
from crypto.foundations import CryptoUtils, ECKeyManager


logger = logging.getLogger(__name__)

DID_KEY_PREFIX = "did:key:z"
VERIFICATION_KEY_TYPE = "EcdsaSecp256r1VerificationKey2019"
KEY_REFERENCE = "owner"


class KeyProvider(Protocol):
    """Fornisce la chiave privata e l'identificativo dell'identità attiva."""

    def get_active_did(self) -> str: ...

    def get_private_key(self, password: Optional[str] = None) -> ec.EllipticCurvePrivateKey: ...


class PublicKeyResolver(Protocol):
    """Risolve un identificativo nella chiave pubblica, None se sconosciuto."""

    def resolve_public_key(self, did: str) -> Optional[ec.EllipticCurvePublicKey]: ...


class DIDKeys(BaseModel):
    """Chiavi PEM associate a un DID."""
    private: str = Field(..., description="Chiave privata PKCS8 PEM")
    public: str = Field(..., description="Chiave pubblica SubjectPublicKeyInfo PEM")


class DIDRecord(BaseModel):
    """Identità locale persistita nella collezione dei DID."""
    id: str = Field(..., description="Identificativo did:key")
    alias: str = Field(..., description="Nome leggibile dell'identità")
    keys: DIDKeys
    created: str = Field(..., description="Timestamp di creazione ISO 8601")
    encrypted: bool = Field(default=False, description="Chiave privata cifrata con password")

    @field_validator('id')
    @classmethod
    def validate_did(cls, v: str) -> str:
        """Valida il prefisso did:key."""
        if not v.startswith(DID_KEY_PREFIX):
            raise ValueError(f"DID deve iniziare con {DID_KEY_PREFIX}")
        return v

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')


@dataclass
class DIDManagerConfiguration:
    """Configurazione del gestore DID."""
    collection: str = "dids"
    allow_did_key_decoding: bool = True


def did_from_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Deriva deterministicamente il did:key da una chiave pubblica."""
    raw = ECKeyManager().export_raw_public_key(public_key)
    return f"{DID_KEY_PREFIX}{raw.hex()}"


def public_key_from_did(did: str) -> ec.EllipticCurvePublicKey:
    """
    Estrae la chiave pubblica da un did:key.

    Raises:
        InputValidationError: se il DID non è un did:key valido
    """
    if not isinstance(did, str) or not did.startswith(DID_KEY_PREFIX):
        raise InputValidationError(f"Metodo DID non supportato: {did}")

    try:
        raw = bytes.fromhex(did[len(DID_KEY_PREFIX):])
        return ECKeyManager().import_raw_public_key(raw)
    except (ValueError, CryptoOperationError) as e:
        raise InputValidationError(f"did:key non valido: {e}")


class DIDManager:
    """
    Gestore delle identità DID locali.

    Crea coppie di chiavi, le persiste tramite il backend di storage
    e risolve gli identificativi per la verifica delle firme.
    """

    def __init__(self, storage, config: Optional[DIDManagerConfiguration] = None):
        """
        Inizializza il gestore

        Args:
            storage: Backend di persistenza (save/get/get_all/delete)
            config: Configurazione (usa default se None)
        """
        self.storage = storage
        self.config = config or DIDManagerConfiguration()
        self.key_manager = ECKeyManager()
        self.active_did: Optional[DIDRecord] = None

    def load(self) -> Optional[DIDRecord]:
        """Carica la prima identità disponibile come identità attiva."""
        records = self.storage.get_all(self.config.collection)
        if records:
            self.active_did = DIDRecord.model_validate(records[0])
            logger.info("DID attivo caricato: %s", self.active_did.id)
        return self.active_did

    def create_did(self, alias: str = "New Identity", password: Optional[str] = None,
                   activate: bool = True) -> DIDRecord:
        """
        Crea una nuova identità

        Args:
            alias: Nome leggibile
            password: Password per cifrare la chiave privata (opzionale)
            activate: Se True l'identità diventa quella attiva

        Returns:
            Record dell'identità creata
        """
        private_key, public_key = self.key_manager.generate_key_pair()
        password_bytes = password.encode('utf-8') if password else None

        record = DIDRecord(
            id=did_from_public_key(public_key),
            alias=alias,
            keys=DIDKeys(
                private=self.key_manager.serialize_private_key(private_key, password_bytes).decode('ascii'),
                public=self.key_manager.serialize_public_key(public_key).decode('ascii')
            ),
            created=CryptoUtils.generate_secure_timestamp(),
            encrypted=password is not None
        )

        self.storage.save(self.config.collection, record.to_dict())
        if activate:
            self.active_did = record

        logger.info("DID creato: %s (%s)", record.id, alias)
        return record

    def activate(self, did: str) -> DIDRecord:
        """
        Imposta l'identità attiva

        Raises:
            KeyUnavailableError: se il DID non è presente localmente
        """
        data = self.storage.get(self.config.collection, did)
        if data is None:
            raise KeyUnavailableError(f"DID non presente localmente: {did}")

        self.active_did = DIDRecord.model_validate(data)
        return self.active_did

    def get_active_did(self) -> str:
        """Restituisce l'identificativo attivo."""
        if self.active_did is None:
            raise KeyUnavailableError("Nessun DID attivo")
        return self.active_did.id

    def get_private_key(self, password: Optional[str] = None) -> ec.EllipticCurvePrivateKey:
        """
        Restituisce la chiave privata dell'identità attiva

        Raises:
            KeyUnavailableError: se non c'è un DID attivo o la chiave non è utilizzabile
        """
        if self.active_did is None:
            raise KeyUnavailableError("Nessun DID attivo")

        if self.active_did.encrypted and not password:
            raise KeyUnavailableError("La chiave privata è cifrata: password richiesta")

        password_bytes = password.encode('utf-8') if password else None
        try:
            return self.key_manager.deserialize_private_key(
                self.active_did.keys.private.encode('ascii'), password_bytes
            )
        except CryptoOperationError as e:
            raise KeyUnavailableError(f"Chiave privata non utilizzabile: {e}")

    def get_public_key(self) -> ec.EllipticCurvePublicKey:
        """Restituisce la chiave pubblica dell'identità attiva."""
        if self.active_did is None:
            raise KeyUnavailableError("Nessun DID attivo")
        return self.key_manager.deserialize_public_key(self.active_did.keys.public.encode('ascii'))

    def resolve_public_key(self, did: str) -> Optional[ec.EllipticCurvePublicKey]:
        """
        Risolve un DID nella chiave pubblica

        Cerca prima nella collezione locale; se assente e la decodifica
        did:key è abilitata, ricava la chiave dall'identificativo stesso.

        Returns:
            Chiave pubblica o None se non risolvibile
        """
        if not isinstance(did, str) or not did:
            return None

        data = self.storage.get(self.config.collection, did)
        if data is not None:
            try:
                record = DIDRecord.model_validate(data)
                return self.key_manager.deserialize_public_key(record.keys.public.encode('ascii'))
            except (ValueError, CryptoOperationError) as e:
                logger.warning("Record DID corrotto per %s: %s", did, e)
                return None

        if self.config.allow_did_key_decoding:
            try:
                return public_key_from_did(did)
            except InputValidationError as e:
                logger.debug("DID non risolvibile %s: %s", did, e)

        return None

    def resolve(self, did: str) -> Dict[str, Any]:
        """
        Costruisce il DID document di un did:key

        Raises:
            InputValidationError: per metodi DID non supportati
        """
        if not did.startswith("did:key:"):
            raise InputValidationError(f"Metodo DID non supportato: {did}")

        method_id = f"{did}#{KEY_REFERENCE}"
        return {
            "@context": "https://www.w3.org/ns/did/v1",
            "id": did,
            "verificationMethod": [{
                "id": method_id,
                "type": VERIFICATION_KEY_TYPE,
                "controller": did,
            }],
            "authentication": [method_id],
            "assertionMethod": [method_id]
        }

    def list_dids(self) -> List[DIDRecord]:
        """Elenca le identità locali."""
        return [DIDRecord.model_validate(r) for r in self.storage.get_all(self.config.collection)]
