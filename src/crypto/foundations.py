# Fondamenta Crittografiche
# Sistema Credenziali Accademiche


import os
import hmac
import json
import math
import uuid
import hashlib
import logging
import datetime
from enum import Enum
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from crypto.exceptions import CryptoOperationError, InputValidationError


logger = logging.getLogger(__name__)

# Curva e dimensioni fisse: le firme sono r||s a 32 byte ciascuno
CURVE_NAME = "secp256r1"
COORDINATE_SIZE = 32
SIGNATURE_SIZE = 2 * COORDINATE_SIZE
SIGNATURE_ALGORITHM = "ECDSA-P256-SHA256"


# 1. GESTIONE CHIAVI ECDSA P-256

class ECKeyManager:
    """Gestisce la generazione e la serializzazione delle chiavi ECDSA P-256"""

    def generate_key_pair(self) -> Tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
        """
        Genera una nuova coppia di chiavi P-256

        Returns:
            Tupla contenente (chiave_privata, chiave_pubblica)
        """
        try:
            private_key = ec.generate_private_key(ec.SECP256R1())
        except Exception as e:
            raise CryptoOperationError(f"Errore nella generazione delle chiavi: {e}")

        logger.debug("Generata coppia di chiavi %s", CURVE_NAME)
        return private_key, private_key.public_key()

    def serialize_private_key(self, private_key: ec.EllipticCurvePrivateKey,
                              password: Optional[bytes] = None) -> bytes:
        """
        Serializza una chiave privata in formato PEM (PKCS8)

        Args:
            private_key: Chiave privata
            password: Password per cifrare la chiave (opzionale)

        Returns:
            Chiave privata serializzata in PEM
        """
        encryption_algorithm = serialization.NoEncryption()
        if password:
            encryption_algorithm = serialization.BestAvailableEncryption(password)

        return private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption_algorithm
        )

    def serialize_public_key(self, public_key: ec.EllipticCurvePublicKey) -> bytes:
        """Serializza una chiave pubblica in formato PEM (SubjectPublicKeyInfo)"""
        return public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )

    def deserialize_private_key(self, pem_data: bytes,
                                password: Optional[bytes] = None) -> ec.EllipticCurvePrivateKey:
        """
        Deserializza una chiave privata da formato PEM

        Raises:
            CryptoOperationError: se il PEM non è valido o non contiene una chiave P-256
        """
        try:
            key = serialization.load_pem_private_key(pem_data, password=password)
        except (ValueError, TypeError) as e:
            raise CryptoOperationError(f"Chiave privata non valida: {e}")

        if not _is_p256_private_key(key):
            raise CryptoOperationError("La chiave privata non è una chiave ECDSA P-256")
        return key

    def deserialize_public_key(self, pem_data: bytes) -> ec.EllipticCurvePublicKey:
        """Deserializza una chiave pubblica da formato PEM"""
        try:
            key = serialization.load_pem_public_key(pem_data)
        except (ValueError, TypeError) as e:
            raise CryptoOperationError(f"Chiave pubblica non valida: {e}")

        if not _is_p256_public_key(key):
            raise CryptoOperationError("La chiave pubblica non è una chiave ECDSA P-256")
        return key

    def export_raw_public_key(self, public_key: ec.EllipticCurvePublicKey) -> bytes:
        """Esporta il punto pubblico non compresso (65 byte)"""
        return public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint
        )

    def import_raw_public_key(self, raw: bytes) -> ec.EllipticCurvePublicKey:
        """Importa un punto pubblico non compresso"""
        try:
            return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)
        except ValueError as e:
            raise CryptoOperationError(f"Punto pubblico non valido: {e}")


def _is_p256_private_key(key: Any) -> bool:
    return isinstance(key, ec.EllipticCurvePrivateKey) and key.curve.name == CURVE_NAME


def _is_p256_public_key(key: Any) -> bool:
    return isinstance(key, ec.EllipticCurvePublicKey) and key.curve.name == CURVE_NAME


# 2. FIRMA DIGITALE ECDSA-SHA256

class DigitalSignature:
    """Firma e verifica ECDSA P-256 con SHA-256, firme r||s in esadecimale"""

    def __init__(self):
        self.hash_algorithm = hashes.SHA256()
        self.algorithm = SIGNATURE_ALGORITHM

    def sign_data(self, private_key: ec.EllipticCurvePrivateKey, data: bytes) -> str:
        """
        Firma digitalmente dei dati

        Args:
            private_key: Chiave privata per la firma
            data: Dati da firmare

        Returns:
            Firma a lunghezza fissa (64 byte) codificata in hex minuscolo

        Raises:
            CryptoOperationError: se la chiave non è una chiave privata P-256
        """
        if not _is_p256_private_key(private_key):
            raise CryptoOperationError("La chiave fornita non è una chiave privata di firma P-256")

        try:
            der_signature = private_key.sign(data, ec.ECDSA(self.hash_algorithm))
        except Exception as e:
            raise CryptoOperationError(f"Errore nella firma: {e}")

        r, s = decode_dss_signature(der_signature)
        raw = r.to_bytes(COORDINATE_SIZE, "big") + s.to_bytes(COORDINATE_SIZE, "big")
        logger.debug("Dati firmati (%d bytes)", len(data))
        return raw.hex()

    def verify_signature(self, public_key: ec.EllipticCurvePublicKey, data: bytes,
                         signature_hex: str) -> bool:
        """
        Verifica una firma digitale

        Args:
            public_key: Chiave pubblica per la verifica
            data: Dati originali
            signature_hex: Firma r||s in esadecimale

        Returns:
            True se la firma è valida, False se malformata o non valida
        """
        if not _is_p256_public_key(public_key):
            raise CryptoOperationError("La chiave fornita non è una chiave pubblica P-256")

        if not isinstance(signature_hex, str):
            return False

        try:
            raw = bytes.fromhex(signature_hex)
        except ValueError:
            logger.debug("Firma non in formato esadecimale")
            return False

        if len(raw) != SIGNATURE_SIZE:
            logger.debug("Lunghezza firma errata: %d bytes", len(raw))
            return False

        r = int.from_bytes(raw[:COORDINATE_SIZE], "big")
        s = int.from_bytes(raw[COORDINATE_SIZE:], "big")

        try:
            public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(self.hash_algorithm))
            return True
        except InvalidSignature:
            return False
        except ValueError:
            return False


# 3. SERIALIZZAZIONE DETERMINISTICA

class DeterministicSerializer:
    """
    Serializzatore deterministico usato per firme e commitment.

    Formato canonico: JSON UTF-8, chiavi ordinate, separatori (',', ':'),
    float interi scritti come interi, NaN e infinito rifiutati.
    Il campo 'proof' viene rimosso prima della firma.
    """

    @staticmethod
    def serialize(obj: Any) -> str:
        """
        Serializza un oggetto in modo deterministico.

        Args:
            obj: Oggetto da serializzare

        Returns:
            Stringa JSON deterministica
        """
        try:
            return json.dumps(
                DeterministicSerializer._normalize_object(obj),
                sort_keys=True,
                separators=(',', ':'),
                ensure_ascii=False,
                allow_nan=False
            )
        except ValueError as e:
            raise InputValidationError(f"Valore non serializzabile: {e}")

    @staticmethod
    def canonicalize(document: Any) -> bytes:
        """
        Produce i byte da firmare: documento senza 'proof', serializzato.

        Args:
            document: Dizionario o modello pydantic

        Returns:
            Byte canonici UTF-8
        """
        normalized = DeterministicSerializer._normalize_object(document)
        if not isinstance(normalized, dict):
            raise InputValidationError("Il documento da canonicalizzare deve essere un oggetto")

        normalized.pop('proof', None)
        return DeterministicSerializer.serialize(normalized).encode('utf-8')

    @staticmethod
    def _normalize_object(obj: Any) -> Any:
        """Normalizza ricorsivamente un oggetto per la serializzazione."""
        if obj is None or isinstance(obj, (bool, str)):
            return obj
        elif isinstance(obj, int):
            return obj
        elif isinstance(obj, float):
            if math.isnan(obj) or math.isinf(obj):
                raise InputValidationError("NaN e infinito non sono ammessi")
            if obj.is_integer():
                return int(obj)
            return obj
        elif isinstance(obj, datetime.datetime):
            if obj.tzinfo is None:
                obj = obj.replace(tzinfo=datetime.timezone.utc)
            return CryptoUtils.format_timestamp(obj)
        elif isinstance(obj, datetime.date):
            return obj.strftime('%Y-%m-%d')
        elif isinstance(obj, Enum):
            return obj.value
        elif isinstance(obj, dict):
            normalized = OrderedDict()
            for key in sorted(obj.keys(), key=str):
                normalized[str(key)] = DeterministicSerializer._normalize_object(obj[key])
            return normalized
        elif isinstance(obj, (list, tuple)):
            return [DeterministicSerializer._normalize_object(item) for item in obj]
        elif hasattr(obj, 'model_dump'):
            return DeterministicSerializer._normalize_object(
                obj.model_dump(mode='json', by_alias=True, exclude_none=True)
            )
        else:
            raise InputValidationError(f"Tipo non serializzabile: {type(obj).__name__}")


# 4. UTILITIES CRITTOGRAFICHE

class CryptoUtils:
    """Utilities crittografiche generali"""

    NONCE_BYTES = 16

    @staticmethod
    def sha256_hash(data: bytes) -> str:
        """
        Calcola hash SHA-256 di dati binari

        Returns:
            Hash in formato esadecimale minuscolo
        """
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def generate_nonce(num_bytes: int = NONCE_BYTES) -> str:
        """Genera un nonce casuale dal CSPRNG del sistema operativo"""
        if num_bytes < 16:
            raise InputValidationError("Il nonce deve essere di almeno 16 byte")
        return os.urandom(num_bytes).hex()

    @staticmethod
    def generate_uuid() -> str:
        """Genera un UUID v4 (os.urandom)"""
        return str(uuid.uuid4())

    @staticmethod
    def format_timestamp(moment: datetime.datetime) -> str:
        """Formatta un datetime come ISO 8601 UTC al millisecondo con suffisso Z"""
        moment = moment.astimezone(datetime.timezone.utc)
        return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

    @staticmethod
    def generate_secure_timestamp() -> str:
        """Genera il timestamp corrente in formato ISO 8601 UTC"""
        return CryptoUtils.format_timestamp(datetime.datetime.now(datetime.timezone.utc))

    @staticmethod
    def parse_timestamp(timestamp: str) -> datetime.datetime:
        """
        Converte un timestamp ISO 8601 in datetime timezone-aware

        Raises:
            InputValidationError: se il formato non è valido
        """
        try:
            if timestamp.endswith('Z'):
                timestamp = timestamp[:-1] + '+00:00'
            parsed = datetime.datetime.fromisoformat(timestamp)
        except (AttributeError, ValueError) as e:
            raise InputValidationError(f"Timestamp non valido: {e}")

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.timezone.utc)
        return parsed

    @staticmethod
    def secure_compare(a: str, b: str) -> bool:
        """Confronto sicuro contro timing attacks"""
        if not isinstance(a, str) or not isinstance(b, str):
            return False
        return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))


def get_signature_info() -> Dict[str, Any]:
    """Parametri fissi della primitiva di firma."""
    return {
        'algorithm': SIGNATURE_ALGORITHM,
        'curve': CURVE_NAME,
        'signature_bytes': SIGNATURE_SIZE,
        'encoding': 'hex',
        'digest': 'SHA-256',
    }
