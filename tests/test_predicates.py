import pytest

from crypto.exceptions import InputValidationError
from wallet.predicates import (
    HashBindingStrategy,
    PredicateProof,
    create_predicate_proof,
    create_range_proof,
    evaluate_predicate,
    verify_predicate_opening,
)


def test_gpa_at_least_three_holds(credential):
    proof = create_predicate_proof(credential, "gpa", ">=", 3.0)

    assert proof.holds is True
    assert proof.predicate == "gpa >= 3.0"
    assert proof.type == "PredicateProof"
    assert proof.credential_id == credential.id
    assert proof.issuer == credential.issuer


def test_gpa_at_least_three_point_six_does_not_hold(credential):
    assert create_predicate_proof(credential, "gpa", ">=", 3.6).holds is False


def test_unknown_operator_is_an_error(credential):
    with pytest.raises(InputValidationError, match="Operatore non supportato"):
        create_predicate_proof(credential, "gpa", "!=", 3.0)


def test_missing_attribute_is_an_error(credential):
    with pytest.raises(InputValidationError):
        create_predicate_proof(credential, "eta", ">", 18)


def test_non_numeric_attribute_is_an_error(credential):
    with pytest.raises(InputValidationError):
        create_predicate_proof(credential, "degree", ">", 3)


@pytest.mark.parametrize("value, operator, threshold, expected", [
    (3.5, ">", 3.5, False),
    (3.5, "<", 4, True),
    (3.5, "<=", "3.5", True),
    ("3.50", "==", 3.5, True),
    ("Informatica", "==", "Informatica", True),
    ("Informatica", "==", "Fisica", False),
])
def test_evaluate_predicate(value, operator, threshold, expected):
    assert evaluate_predicate(value, operator, threshold) is expected


def test_nonce_is_never_serialized(credential):
    proof = create_predicate_proof(credential, "gpa", ">=", 3.0)

    data = proof.to_dict()

    assert proof.nonce is not None
    assert proof.nonce not in proof.model_dump_json()
    assert "nonce" not in data and "_nonce" not in data
    assert set(data["proof"]) == {"hash"}
    assert data["credentialId"] == credential.id


def test_commitments_differ_between_proofs(credential):
    first = create_predicate_proof(credential, "gpa", ">=", 3.0)
    second = create_predicate_proof(credential, "gpa", ">=", 3.0)
    assert first.commitment != second.commitment


def test_opening_verifies_binding(credential):
    proof = create_predicate_proof(credential, "gpa", ">=", 3.0)

    assert verify_predicate_opening(proof, 3.5, proof.nonce)
    assert verify_predicate_opening(proof.to_dict(), 3.5, proof.nonce)
    assert not verify_predicate_opening(proof, 3.4, proof.nonce)
    assert not verify_predicate_opening(proof, 3.5, "00" * 16)


def test_opening_detects_forged_result(credential):
    proof = create_predicate_proof(credential, "gpa", ">=", 3.6)
    forged = proof.to_dict()
    forged["holds"] = True

    assert not verify_predicate_opening(forged, 3.5, proof.nonce)


def test_range_proof(credential):
    inside = create_range_proof(credential, "gpa", 3.0, 4.0)
    outside = create_range_proof(credential, "gpa", 3.6, 4.0)

    assert inside.type == "RangeProof"
    assert inside.predicate == "3.0 <= gpa <= 4.0"
    assert inside.holds is True
    assert outside.holds is False
    assert verify_predicate_opening(inside, 3.5, inside.nonce)
    assert not verify_predicate_opening(inside, 2.0, inside.nonce)


def test_empty_range_is_an_error(credential):
    with pytest.raises(InputValidationError):
        create_range_proof(credential, "gpa", 4.0, 3.0)


def test_malformed_proof_does_not_verify():
    assert not verify_predicate_opening({"type": "PredicateProof"}, 3.5, "00" * 16)


def test_custom_strategy_is_used(credential):
    class RecordingStrategy(HashBindingStrategy):
        calls = 0

        def commit(self, value, statement):
            RecordingStrategy.calls += 1
            return super().commit(value, statement)

    proof = create_predicate_proof(credential, "gpa", ">", 3, strategy=RecordingStrategy())

    assert isinstance(proof, PredicateProof)
    assert RecordingStrategy.calls == 1
