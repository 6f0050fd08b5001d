# =============================================================================
# WALLET - STORAGE
# File: wallet/storage.py
# Sistema Credenziali Accademiche Decentralizzate
# =============================================================================

"""
Backend di persistenza usati da issuer, wallet e gestore DID.

Ogni record è un dizionario JSON identificato dal proprio campo 'id'
(o dal campo indicato da key_field); le collezioni sono indipendenti.
"""

import os
import json
import base64
import copy
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from crypto.exceptions import CryptoOperationError, InputValidationError


logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Interfaccia minima richiesta dal core."""

    def save(self, collection: str, record: Dict[str, Any]) -> str: ...

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]: ...

    def get_all(self, collection: str) -> List[Dict[str, Any]]: ...

    def delete(self, collection: str, key: str) -> bool: ...


def _record_key(record: Dict[str, Any], key_field: str) -> str:
    if not isinstance(record, dict):
        raise InputValidationError("Il record deve essere un dizionario")
    key = record.get(key_field)
    if not key or not isinstance(key, str):
        raise InputValidationError(f"Record privo del campo chiave '{key_field}'")
    return key


class InMemoryStorage:
    """Storage volatile, utile per test e per processi effimeri."""

    def __init__(self, key_field: str = "id"):
        self.key_field = key_field
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def save(self, collection: str, record: Dict[str, Any]) -> str:
        key = _record_key(record, self.key_field)
        with self._lock:
            self._collections.setdefault(collection, {})[key] = copy.deepcopy(record)
        return key

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(record) if record is not None else None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            records = list(self._collections.get(collection, {}).values())
        return [copy.deepcopy(r) for r in records]

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            return self._collections.get(collection, {}).pop(key, None) is not None


class EncryptedFileStorage:
    """
    Storage su filesystem cifrato con Fernet.

    La chiave Fernet è derivata dalla password con PBKDF2-HMAC-SHA256;
    il salt è salvato in chiaro accanto ai dati. Ogni collezione è un
    file '<collezione>.enc' contenente l'intero dizionario cifrato.
    """

    SALT_FILE = "storage.salt"

    def __init__(self, storage_path: str, password: str, key_field: str = "id",
                 kdf_iterations: int = 480000):
        """
        Inizializza lo storage cifrato

        Args:
            storage_path: Directory dei file cifrati
            password: Password da cui derivare la chiave
            key_field: Campo usato come chiave dei record
            kdf_iterations: Iterazioni PBKDF2
        """
        if not password:
            raise InputValidationError("Password di storage obbligatoria")

        self.key_field = key_field
        self.storage_dir = Path(storage_path)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        salt = self._load_or_create_salt()
        self.fernet = Fernet(self._derive_key_from_password(password, salt, kdf_iterations))

        logger.info("Storage cifrato inizializzato: %s", self.storage_dir)

    def _load_or_create_salt(self) -> bytes:
        salt_file = self.storage_dir / self.SALT_FILE
        if salt_file.exists():
            return salt_file.read_bytes()

        salt = os.urandom(16)
        salt_file.write_bytes(salt)
        return salt

    @staticmethod
    def _derive_key_from_password(password: str, salt: bytes, iterations: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode('utf-8')))

    def _collection_file(self, collection: str) -> Path:
        if not collection or not collection.replace('_', '').replace('-', '').isalnum():
            raise InputValidationError(f"Nome collezione non valido: {collection!r}")
        return self.storage_dir / f"{collection}.enc"

    def _read_collection(self, collection: str) -> Dict[str, Dict[str, Any]]:
        path = self._collection_file(collection)
        if not path.exists():
            return {}

        try:
            decrypted = self.fernet.decrypt(path.read_bytes())
        except InvalidToken:
            raise CryptoOperationError(
                f"Impossibile decifrare la collezione '{collection}': password errata o dati corrotti"
            )
        return json.loads(decrypted.decode('utf-8'))

    def _write_collection(self, collection: str, records: Dict[str, Dict[str, Any]]) -> None:
        path = self._collection_file(collection)
        payload = json.dumps(records, ensure_ascii=False).encode('utf-8')
        tmp_path = path.with_suffix('.tmp')
        tmp_path.write_bytes(self.fernet.encrypt(payload))
        os.replace(tmp_path, path)
        os.chmod(path, 0o600)

    def save(self, collection: str, record: Dict[str, Any]) -> str:
        key = _record_key(record, self.key_field)
        with self._lock:
            records = self._read_collection(collection)
            records[key] = record
            self._write_collection(collection, records)
        logger.debug("Record salvato in %s: %s", collection, key)
        return key

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read_collection(collection).get(key)

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._read_collection(collection).values())

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            records = self._read_collection(collection)
            if records.pop(key, None) is None:
                return False
            self._write_collection(collection, records)
        logger.debug("Record eliminato da %s: %s", collection, key)
        return True
