"""
Prove di predicato e di intervallo su attributi nascosti.

ATTENZIONE: non sono prove zero-knowledge. Il valore viene vincolato con
un commitment e il risultato con un hash di binding, ma uno studente con
accesso al codice può dichiarare un 'holds' arbitrario. L'unica vera
ancora di fiducia resta la firma dell'issuer sulla credenziale; il
binding diventa verificabile solo quando lo studente apre il commitment
(verify_predicate_opening).
"""

import logging
import operator as op
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from crypto.exceptions import InputValidationError
from crypto.foundations import CryptoUtils, DeterministicSerializer
from credentials.models import CredentialLike, credential_to_dict
from wallet.selective_disclosure import create_commitment


logger = logging.getLogger(__name__)

PREDICATE_PROOF_TYPE = "PredicateProof"
RANGE_PROOF_TYPE = "RangeProof"

NUMERIC_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    '>': op.gt,
    '<': op.lt,
    '>=': op.ge,
    '<=': op.le,
}
SUPPORTED_OPERATORS = tuple(NUMERIC_OPERATORS) + ('==',)


class PredicateProof(BaseModel):
    """Affermazione su un attributo, legata al valore da commitment e hash."""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(default=PREDICATE_PROOF_TYPE)
    credential_id: str = Field(..., alias="credentialId")
    attribute: str
    predicate: str = Field(..., description="Enunciato, es. 'gpa >= 3.0'")
    operator: str = Field(..., description="Operatore, 'range' per gli intervalli")
    threshold: Any = Field(..., description="Soglia o coppia [min, max]")
    holds: bool
    commitment: str
    proof: Dict[str, str] = Field(..., description="{'hash': binding}")
    issuer: str
    issuance_date: str = Field(..., alias="issuanceDate")

    # L'apertura resta allo studente e non viene mai serializzata
    _nonce: Optional[str] = PrivateAttr(default=None)

    @property
    def nonce(self) -> Optional[str]:
        return self._nonce

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True)


def _parse_number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise InputValidationError(f"{what} non è numerico: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InputValidationError(f"{what} non è numerico: {value!r}")


def _try_number(value: Any) -> Optional[float]:
    try:
        return _parse_number(value, "valore")
    except InputValidationError:
        return None


def evaluate_predicate(value: Any, operator: str, threshold: Any) -> bool:
    """
    Valuta value <operator> threshold.

    '==' confronta numericamente se entrambi i lati sono numeri,
    altrimenti come stringhe.

    Raises:
        InputValidationError: operatore sconosciuto o valore non numerico
    """
    if operator == '==':
        left, right = _try_number(value), _try_number(threshold)
        if left is not None and right is not None:
            return left == right
        return str(value) == str(threshold)

    compare = NUMERIC_OPERATORS.get(operator)
    if compare is None:
        raise InputValidationError(
            f"Operatore non supportato: {operator!r} (ammessi: {', '.join(SUPPORTED_OPERATORS)})"
        )
    return compare(_parse_number(value, "Valore dell'attributo"), _parse_number(threshold, "Soglia"))


class PredicateProofStrategy(Protocol):
    """Schema con cui si vincola il risultato di un predicato al valore."""

    def commit(self, value: Any, statement: Dict[str, Any]) -> Tuple[str, str, str]:
        """Restituisce (commitment, binding, nonce)."""
        ...

    def check_opening(self, commitment: str, binding: str, value: Any,
                      statement: Dict[str, Any], nonce: str) -> bool:
        ...


class HashBindingStrategy:
    """Commitment SHA-256 del valore e hash di binding dell'enunciato."""

    def __init__(self, nonce_bytes: int = CryptoUtils.NONCE_BYTES):
        self.nonce_bytes = nonce_bytes

    @staticmethod
    def _binding(value: Any, statement: Dict[str, Any], nonce: str) -> str:
        payload = DeterministicSerializer.serialize({'value': value, **statement}) + nonce
        return CryptoUtils.sha256_hash(payload.encode('utf-8'))

    def commit(self, value: Any, statement: Dict[str, Any]) -> Tuple[str, str, str]:
        nonce = CryptoUtils.generate_nonce(self.nonce_bytes)
        return create_commitment(value, nonce), self._binding(value, statement, nonce), nonce

    def check_opening(self, commitment: str, binding: str, value: Any,
                      statement: Dict[str, Any], nonce: str) -> bool:
        return (
            CryptoUtils.secure_compare(create_commitment(value, nonce), commitment)
            and CryptoUtils.secure_compare(self._binding(value, statement, nonce), binding)
        )


def _attribute_value(data: Dict[str, Any], attribute: str) -> Any:
    subject = data.get('credentialSubject') or {}
    if attribute not in subject:
        raise InputValidationError(f"Attributo non presente nella credenziale: {attribute}")
    return subject[attribute]


def _build_proof(data: Dict[str, Any], proof_type: str, attribute: str, statement_text: str,
                 holds: bool, value: Any, statement: Dict[str, Any],
                 strategy: PredicateProofStrategy) -> PredicateProof:
    commitment, binding, nonce = strategy.commit(value, statement)

    proof = PredicateProof(
        type=proof_type,
        credential_id=data.get('id'),
        attribute=attribute,
        predicate=statement_text,
        operator=statement['operator'],
        threshold=statement['threshold'],
        holds=holds,
        commitment=commitment,
        proof={'hash': binding},
        issuer=data.get('issuer'),
        issuance_date=data.get('issuanceDate')
    )
    proof._nonce = nonce

    logger.info("%s creata: %s -> %s", proof_type, statement_text, holds)
    return proof


def create_predicate_proof(credential: CredentialLike, attribute: str, operator: str, threshold: Any,
                           strategy: Optional[PredicateProofStrategy] = None) -> PredicateProof:
    """
    Crea una prova di predicato (es. "gpa >= 3.0") senza rivelare il valore.

    Raises:
        InputValidationError: operatore sconosciuto, attributo assente o
            valore non numerico per operatori d'ordine
    """
    data = credential_to_dict(credential)
    value = _attribute_value(data, attribute)
    holds = evaluate_predicate(value, operator, threshold)

    statement = {'operator': operator, 'threshold': threshold, 'holds': holds}
    return _build_proof(
        data, PREDICATE_PROOF_TYPE, attribute, f"{attribute} {operator} {threshold}",
        holds, value, statement, strategy or HashBindingStrategy()
    )


def create_range_proof(credential: CredentialLike, attribute: str, min_value: Any, max_value: Any,
                       strategy: Optional[PredicateProofStrategy] = None) -> PredicateProof:
    """Crea una prova di intervallo: min <= valore <= max."""
    data = credential_to_dict(credential)
    value = _parse_number(_attribute_value(data, attribute), f"Attributo {attribute}")
    low = _parse_number(min_value, "Minimo")
    high = _parse_number(max_value, "Massimo")
    if low > high:
        raise InputValidationError(f"Intervallo vuoto: {min_value} > {max_value}")

    holds = low <= value <= high
    statement = {'operator': 'range', 'threshold': [min_value, max_value], 'holds': holds}
    return _build_proof(
        data, RANGE_PROOF_TYPE, attribute, f"{min_value} <= {attribute} <= {max_value}",
        holds, value, statement, strategy or HashBindingStrategy()
    )


def verify_predicate_opening(proof: Any, value: Any, nonce: str,
                             strategy: Optional[PredicateProofStrategy] = None) -> bool:
    """
    Verifica una prova dopo che lo studente ha aperto il commitment.

    Ricalcola commitment, binding e valore di verità dell'enunciato.

    Args:
        proof: PredicateProof o dizionario JSON
        value: Valore rivelato dell'attributo
        nonce: Apertura del commitment

    Returns:
        True se apertura, binding e 'holds' sono coerenti
    """
    strategy = strategy or HashBindingStrategy()
    try:
        data = proof.to_dict() if isinstance(proof, PredicateProof) else dict(proof)
        operator = data['operator']
        threshold = data['threshold']
        holds = data['holds']

        if data.get('type') == RANGE_PROOF_TYPE:
            low, high = threshold
            committed_value = _parse_number(value, "Valore")
            expected = _parse_number(low, "Minimo") <= committed_value <= _parse_number(high, "Massimo")
        else:
            committed_value = value
            expected = evaluate_predicate(value, operator, threshold)

        statement = {'operator': operator, 'threshold': threshold, 'holds': holds}
        if expected != holds:
            logger.warning("Valore di verità non coerente con il valore aperto")
            return False

        return strategy.check_opening(data['commitment'], data['proof']['hash'],
                                      committed_value, statement, nonce)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Prova di predicato malformata: %s", e)
        return False
