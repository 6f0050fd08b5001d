import json

import pytest

from credentials.issuer import issue_credential
from credentials.validator import OriginalProofPolicy, VerifierConfiguration
from crypto.exceptions import CommitmentMismatchError, InputValidationError
from crypto.foundations import ECKeyManager
from wallet import validate_disclosure_config
from wallet.selective_disclosure import (
    CacheMode,
    CommitmentCache,
    DisclosureConfiguration,
    SelectiveDisclosureManager,
    create_commitment,
)


ALL_ATTRIBUTES = ["id", "name", "institution", "degree", "courses", "gpa"]


def test_commitment_depends_on_value_and_nonce():
    nonce = "00" * 16
    assert create_commitment(3.5, nonce) == create_commitment(3.5, nonce)
    assert create_commitment(3.5, nonce) != create_commitment(3.6, nonce)
    assert create_commitment(3.5, nonce) != create_commitment(3.5, "11" * 16)
    assert len(create_commitment({"a": [1, 2]}, nonce)) == 64


def test_commitments_cover_every_subject_key(disclosure, credential):
    record = disclosure.create_commitments(credential)

    assert list(record.attributes) == ALL_ATTRIBUTES
    assert list(record.nonces) == ALL_ATTRIBUTES
    assert all(len(n) == 32 for n in record.nonces.values())
    assert record.credential_id == credential.id


def test_fresh_nonces_on_every_create_commitments(disclosure, credential):
    first = disclosure.create_commitments(credential)
    second = disclosure.create_commitments(credential)
    assert first.attributes["gpa"] != second.attributes["gpa"]


def test_full_reveal_is_transparent(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, ALL_ATTRIBUTES)

    assert presentation.hidden_attribute_count == 0
    assert presentation.revealed_attribute_count == 6
    assert presentation.disclosed_attributes == credential.credential_subject
    assert presentation.commitments == {}


def test_partition_invariants(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, ["degree", "gpa"]).to_dict()

    assert set(presentation["disclosedAttributes"]) == {"degree", "gpa"}
    assert set(presentation["proofs"]) == {"degree", "gpa"}
    assert set(presentation["commitments"]) == {"id", "name", "institution", "courses"}
    assert presentation["hiddenAttributeCount"] + presentation["revealedAttributeCount"] == 6
    assert presentation["type"] == ["VerifiablePresentation", "SelectiveDisclosurePresentation"]
    assert presentation["originalProof"] == credential.proof.to_dict()


def test_empty_reveal_set(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, [])

    assert presentation.revealed_attribute_count == 0
    assert presentation.hidden_attribute_count == 6
    result = disclosure.verify_selective_presentation(presentation, credential)
    assert result.verified
    assert result.hidden_count == 6


def test_unknown_reveal_names_are_ignored(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, ["gpa", "matricola"])
    assert list(presentation.disclosed_attributes) == ["gpa"]


def test_strict_reveal_set_rejects_unknown_names(university, credential):
    manager = SelectiveDisclosureManager(DisclosureConfiguration(strict_reveal_set=True), university)
    with pytest.raises(InputValidationError, match="matricola"):
        manager.create_selective_presentation(credential, ["gpa", "matricola"])


def test_reveal_set_must_not_be_a_string(disclosure, credential):
    with pytest.raises(InputValidationError):
        disclosure.create_selective_presentation(credential, "gpa")


def test_unsigned_credential_cannot_be_presented(disclosure, credential):
    data = credential.to_dict()
    del data["proof"]
    with pytest.raises(InputValidationError):
        disclosure.create_selective_presentation(data, ["gpa"])


# Verifica

def test_honest_full_presentation_verifies_without_credential(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, ALL_ATTRIBUTES)

    result = disclosure.verify_selective_presentation(presentation)

    assert result.verified
    assert result.checks == {"structure": True, "commitments": True, "originalSignature": True}
    assert result.disclosed_attributes == credential.credential_subject


def test_honest_partial_presentation_verifies_with_credential(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, ["degree", "gpa"])

    result = disclosure.verify_selective_presentation(json.loads(presentation.to_json()), credential)

    assert result.verified
    assert result.disclosed_attributes == {"degree": "Informatica", "gpa": 3.5}
    assert result.hidden_count == 4
    assert result.to_dict()["hiddenCount"] == 4


@pytest.mark.parametrize("attribute", ["degree", "gpa"])
def test_flipped_proof_value_fails_commitments(disclosure, credential, attribute):
    data = disclosure.create_selective_presentation(credential, ["degree", "gpa"]).to_dict()
    data["proofs"][attribute]["value"] = "falsificato"
    data["disclosedAttributes"][attribute] = "falsificato"

    result = disclosure.verify_selective_presentation(data, credential)

    assert not result.verified
    assert result.checks["structure"]
    assert not result.checks["commitments"]
    assert any(attribute in e for e in result.errors)
    assert [m.attribute for m in result.mismatches] == [attribute]
    assert isinstance(result.mismatches[0], CommitmentMismatchError)


def test_flipped_disclosed_value_fails_commitments(disclosure, credential):
    data = disclosure.create_selective_presentation(credential, ["gpa"]).to_dict()
    data["disclosedAttributes"]["gpa"] = 4.0

    result = disclosure.verify_selective_presentation(data, credential)

    assert not result.checks["commitments"]
    assert any("gpa" in e for e in result.errors)
    assert "gpa" not in result.disclosed_attributes


def test_all_mismatches_are_reported(disclosure, credential):
    data = disclosure.create_selective_presentation(credential, ["name", "degree"]).to_dict()
    for name in ("name", "degree"):
        data["proofs"][name]["value"] = "x"
        data["disclosedAttributes"][name] = "x"

    result = disclosure.verify_selective_presentation(data, credential)

    assert sorted(m.attribute for m in result.mismatches) == ["degree", "name"]


@pytest.mark.parametrize("missing", ["disclosedAttributes", "proofs", "originalProof"])
def test_missing_structure_fields(disclosure, credential, missing):
    data = disclosure.create_selective_presentation(credential, ["gpa"]).to_dict()
    del data[missing]

    result = disclosure.verify_selective_presentation(data, credential)

    assert not result.verified
    assert result.checks == {"structure": False, "commitments": False, "originalSignature": False}


def test_inconsistent_counts_fail_structure(disclosure, credential):
    data = disclosure.create_selective_presentation(credential, ["gpa"]).to_dict()
    data["hiddenAttributeCount"] = 0

    result = disclosure.verify_selective_presentation(data, credential)

    assert not result.checks["structure"]
    assert result.checks["commitments"]
    assert not result.verified


def test_partial_presentation_without_credential_is_not_trusted(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, ["gpa"])

    result = disclosure.verify_selective_presentation(presentation)

    assert result.checks["commitments"]
    assert not result.checks["originalSignature"]
    assert not result.verified


def test_presence_only_policy_accepts_partial_presentation(university, credential):
    manager = SelectiveDisclosureManager(
        resolver=university,
        verifier_config=VerifierConfiguration(original_proof_policy=OriginalProofPolicy.PRESENCE_ONLY)
    )
    presentation = manager.create_selective_presentation(credential, ["gpa"])

    assert manager.verify_selective_presentation(presentation).verified


def test_forged_original_proof_is_rejected(disclosure, university, credential):
    other_key, _ = ECKeyManager().generate_key_pair()
    forged = issue_credential(
        credential.issuer, other_key, credential.subject_id, "Mario Rossi",
        "Università di Salerno", "Informatica", [{"name": "Algoritmi", "grade": "A", "credits": 6}]
    )
    presentation = disclosure.create_selective_presentation(forged, ALL_ATTRIBUTES)

    result = disclosure.verify_selective_presentation(presentation)

    assert result.checks["commitments"]
    assert not result.checks["originalSignature"]
    assert not result.verified


def test_out_of_band_credential_must_match(disclosure, university, credential, student_did, issuer):
    other = issuer.issue_credential(student_did, "Mario Rossi", "Unisa", "Fisica", [])
    presentation = disclosure.create_selective_presentation(credential, ["gpa"])

    result = disclosure.verify_selective_presentation(presentation, other)

    assert not result.checks["originalSignature"]
    assert any("non corrisponde" in e for e in result.errors)


def test_unknown_issuer_fails_original_signature(disclosure, credential):
    data = disclosure.create_selective_presentation(credential, ALL_ATTRIBUTES).to_dict()
    data["issuer"] = "did:web:sconosciuto"

    result = disclosure.verify_selective_presentation(data)

    assert not result.checks["originalSignature"]
    assert any("Issuer non trovato" in e for e in result.errors)


def test_presentation_summary(disclosure, credential):
    presentation = disclosure.create_selective_presentation(credential, ["name", "gpa"])

    summary = disclosure.get_presentation_summary(presentation)

    assert summary == {
        "revealed": ["name", "gpa"],
        "hidden": ["id", "institution", "degree", "courses"],
        "totalAttributes": 6,
    }


# Cache

def test_session_cache_reuses_commitments(disclosure, credential):
    first = disclosure.create_selective_presentation(credential, ["gpa"])
    second = disclosure.create_selective_presentation(credential, ["degree"])

    assert first.commitments["name"] == second.commitments["name"]
    assert first.proofs["gpa"].commitment == second.commitments["gpa"]
    assert disclosure.get_statistics()["cache_hits"] == 1


def test_no_cache_gives_fresh_commitments(university, credential):
    manager = SelectiveDisclosureManager(DisclosureConfiguration(cache_mode=CacheMode.NONE), university)

    first = manager.create_selective_presentation(credential, ["gpa"])
    second = manager.create_selective_presentation(credential, ["gpa"])

    assert first.commitments["name"] != second.commitments["name"]
    assert manager.get_statistics()["cached_credentials"] == 0


def test_ttl_cache_expires(university, credential, clock):
    config = DisclosureConfiguration(cache_mode=CacheMode.TTL, cache_ttl_seconds=60)
    manager = SelectiveDisclosureManager(config, university, clock=clock)

    first = manager.create_selective_presentation(credential, [])
    clock.advance(30)
    second = manager.create_selective_presentation(credential, [])
    clock.advance(61)
    third = manager.create_selective_presentation(credential, [])

    assert first.commitments == second.commitments
    assert third.commitments != first.commitments


def test_clear_cache_regenerates(disclosure, credential):
    first = disclosure.create_selective_presentation(credential, [])
    disclosure.clear_cache()
    second = disclosure.create_selective_presentation(credential, [])
    assert first.commitments != second.commitments


def test_cache_is_bounded():
    cache = CommitmentCache(CacheMode.SESSION, max_entries=2)
    manager = SelectiveDisclosureManager()
    manager.cache = cache
    for index in range(3):
        manager.create_commitments({
            "id": f"urn:uuid:{index}", "credentialSubject": {"id": "did:key:zabc", "gpa": index}
        })

    assert len(cache) == 2
    assert cache.get("urn:uuid:0") is None
    assert cache.get("urn:uuid:2") is not None


def test_disclosure_config_validation():
    assert validate_disclosure_config(DisclosureConfiguration())[0]
    ok, errors = validate_disclosure_config(DisclosureConfiguration(nonce_bytes=8))
    assert not ok and errors


def test_invalidate_drops_single_credential(disclosure, credential):
    first = disclosure.create_selective_presentation(credential, [])

    assert disclosure.cache.invalidate(credential.id)
    assert not disclosure.cache.invalidate(credential.id)
    assert disclosure.create_selective_presentation(credential, []).commitments != first.commitments


def test_disclosure_templates_are_valid_reveal_sets(disclosure, credential):
    from wallet import DISCLOSURE_SCENARIOS, get_disclosure_template, get_wallet_info

    for scenario in DISCLOSURE_SCENARIOS:
        reveal = get_disclosure_template(scenario)["reveal"]
        presentation = disclosure.create_selective_presentation(credential, reveal)
        assert list(presentation.disclosed_attributes) == [a for a in ALL_ATTRIBUTES if a in reveal]

    assert get_disclosure_template("sconosciuto") == {}
    assert "selective_disclosure" in get_wallet_info()["components"]


# Valori nulli e manomissioni delle aperture

@pytest.fixture
def nameless_credential(university, student_did):
    return issue_credential(
        university.get_active_did(), university.get_private_key(), student_did,
        None, "Unisa", "Informatica", []
    )


def test_null_attribute_keeps_its_opening(disclosure, nameless_credential):
    presentation = disclosure.create_selective_presentation(nameless_credential, ["name", "gpa"])

    data = json.loads(presentation.to_json())

    assert data["proofs"]["name"]["value"] is None
    assert presentation.to_dict()["proofs"]["name"]["value"] is None
    assert "expirationDate" not in data

    result = disclosure.verify_selective_presentation(data, nameless_credential)
    assert result.verified
    assert result.disclosed_attributes["name"] is None


def test_null_attribute_in_full_reveal_verifies_without_credential(disclosure, nameless_credential):
    presentation = disclosure.create_selective_presentation(nameless_credential, ALL_ATTRIBUTES)

    assert disclosure.verify_selective_presentation(presentation.to_dict()).verified


def _swap_revealed_value(data, attribute, value):
    opening = data["proofs"][attribute]
    opening["value"] = value
    opening["commitment"] = create_commitment(value, opening["nonce"])
    data["disclosedAttributes"][attribute] = value
    return data


def test_recommitted_value_fails_original_signature_on_full_reveal(disclosure, credential):
    data = disclosure.create_selective_presentation(credential, ALL_ATTRIBUTES).to_dict()
    _swap_revealed_value(data, "gpa", 4.0)

    result = disclosure.verify_selective_presentation(data)

    assert result.checks["structure"]
    assert result.checks["commitments"]
    assert not result.checks["originalSignature"]
    assert not result.verified


def test_recommitted_value_fails_against_full_credential(disclosure, credential):
    data = disclosure.create_selective_presentation(credential, ["degree", "gpa"]).to_dict()
    _swap_revealed_value(data, "degree", "Medicina")

    result = disclosure.verify_selective_presentation(data, credential)

    assert result.checks["commitments"]
    assert not result.checks["originalSignature"]
    assert any("degree" in e for e in result.errors)
    assert not result.verified


def test_non_p256_issuer_key_fails_without_raising(credential):
    from cryptography.hazmat.primitives.asymmetric import ec

    class OtherCurveResolver:
        def resolve_public_key(self, did):
            return ec.generate_private_key(ec.SECP384R1()).public_key()

    manager = SelectiveDisclosureManager(resolver=OtherCurveResolver())
    presentation = manager.create_selective_presentation(credential, ALL_ATTRIBUTES)

    result = manager.verify_selective_presentation(presentation)

    assert not result.checks["originalSignature"]
    assert not result.verified
    assert any("P-256" in e for e in result.errors)
