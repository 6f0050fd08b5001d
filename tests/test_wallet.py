import pytest

from credentials.revocation import InMemoryRevocationRegistry
from crypto.exceptions import CryptoOperationError, InputValidationError, KeyUnavailableError
from identity.did_manager import DIDManager, did_from_public_key, public_key_from_did
from wallet.presentation import PresentationManager, VerifiablePresentation
from wallet.storage import EncryptedFileStorage, InMemoryStorage
from wallet.student_wallet import AcademicStudentWallet, WalletConfiguration


# Storage

def test_in_memory_storage_crud():
    storage = InMemoryStorage()
    record = {"id": "a", "value": [1, 2]}

    assert storage.save("col", record) == "a"
    record["value"].append(3)
    assert storage.get("col", "a") == {"id": "a", "value": [1, 2]}
    assert storage.get_all("col") == [{"id": "a", "value": [1, 2]}]
    assert storage.delete("col", "a")
    assert not storage.delete("col", "a")
    assert storage.get("col", "a") is None


def test_storage_requires_key_field():
    with pytest.raises(InputValidationError):
        InMemoryStorage().save("col", {"value": 1})


def test_encrypted_storage_round_trip(tmp_path):
    storage = EncryptedFileStorage(str(tmp_path), "password-lunga", kdf_iterations=1000)
    storage.save("credentials", {"id": "urn:uuid:1", "gpa": 3.5})

    reopened = EncryptedFileStorage(str(tmp_path), "password-lunga", kdf_iterations=1000)

    assert reopened.get("credentials", "urn:uuid:1") == {"id": "urn:uuid:1", "gpa": 3.5}
    assert b"urn:uuid:1" not in (tmp_path / "credentials.enc").read_bytes()


def test_encrypted_storage_wrong_password(tmp_path):
    EncryptedFileStorage(str(tmp_path), "password-lunga", kdf_iterations=1000).save("dids", {"id": "x"})

    wrong = EncryptedFileStorage(str(tmp_path), "sbagliata", kdf_iterations=1000)

    with pytest.raises(CryptoOperationError):
        wrong.get_all("dids")


def test_encrypted_storage_rejects_bad_collection_names(tmp_path):
    storage = EncryptedFileStorage(str(tmp_path), "password-lunga", kdf_iterations=1000)
    with pytest.raises(InputValidationError):
        storage.get_all("../fuori")


# Identity

def test_no_active_did():
    manager = DIDManager(InMemoryStorage())
    with pytest.raises(KeyUnavailableError):
        manager.get_active_did()
    with pytest.raises(KeyUnavailableError):
        manager.get_private_key()


def test_did_key_is_self_certifying(university, university_did):
    public_key = university.get_public_key()

    assert did_from_public_key(public_key) == university_did
    assert did_from_public_key(public_key_from_did(university_did)) == university_did
    assert DIDManager(InMemoryStorage()).resolve_public_key(university_did) is not None


def test_password_protected_identity():
    manager = DIDManager(InMemoryStorage())
    manager.create_did("Protetta", password="segreto")

    with pytest.raises(KeyUnavailableError):
        manager.get_private_key()
    with pytest.raises(KeyUnavailableError):
        manager.get_private_key("sbagliata")
    assert manager.get_private_key("segreto") is not None


def test_did_document_and_listing(storage, university, university_did, student_did):
    document = university.resolve(university_did)

    assert document["id"] == university_did
    assert document["assertionMethod"] == [f"{university_did}#owner"]
    assert {r.id for r in university.list_dids()} == {university_did, student_did}
    with pytest.raises(InputValidationError):
        university.resolve("did:web:example.org")


def test_activate_switches_identity(university, university_did, student_did):
    university.activate(student_did)
    assert university.get_active_did() == student_did
    with pytest.raises(KeyUnavailableError):
        university.activate("did:key:zsconosciuto")
    university.activate(university_did)


# Student wallet

def test_wallet_collection(storage, credential, student_did):
    wallet = AcademicStudentWallet(storage)

    assert wallet.add_credential(credential.to_dict(), tags=["laurea"]) == credential.id
    assert wallet.get_credential(credential.id).to_dict() == credential.to_dict()
    assert [c.id for c in wallet.get_my_credentials(student_did)] == [credential.id]
    assert wallet.get_my_credentials("did:key:zaltro") == []
    assert wallet.list_credentials()[0]["tags"] == ["laurea"]

    reloaded = AcademicStudentWallet(storage)
    assert reloaded.load() == 1

    assert wallet.delete_credential(credential.id)
    assert wallet.get_credential(credential.id) is None
    assert not wallet.delete_credential(credential.id)


def test_wallet_rejects_malformed_credential(storage):
    with pytest.raises(InputValidationError):
        AcademicStudentWallet(storage).add_credential({"id": "x"})


def test_wallet_can_verify_on_add(storage, credential):
    from credentials.validator import AcademicCredentialVerifier

    verifier = AcademicCredentialVerifier(DIDManager(InMemoryStorage()))
    wallet = AcademicStudentWallet(storage, WalletConfiguration(verify_on_add=True), verifier)
    tampered = credential.to_dict()
    tampered["credentialSubject"]["gpa"] = 4.0

    assert wallet.add_credential(credential) == credential.id
    with pytest.raises(InputValidationError):
        wallet.add_credential(tampered)


# Presentazioni verificabili

@pytest.fixture
def holder_wallet(storage, credential):
    wallet = AcademicStudentWallet(storage)
    wallet.add_credential(credential)
    return wallet


def test_holder_signed_presentation(student, holder_wallet, credential, student_did):
    manager = PresentationManager(student, student, holder_wallet)

    presentation = manager.create_presentation([credential.id])
    report = manager.verify_presentation(presentation)

    assert presentation.holder == student_did
    assert presentation.proof.verification_method == f"{student_did}#owner"
    assert report.verified
    assert report.checks == {"structure": True, "signature": True, "holder": True, "credentials": True}
    assert presentation.get_summary()["total_credentials"] == 1


def test_presentation_round_trips_through_json(student, holder_wallet, credential):
    manager = PresentationManager(student, student, holder_wallet)
    presentation = manager.create_presentation([credential])

    parsed = VerifiablePresentation.from_dict(presentation.to_dict())

    assert manager.verify_presentation(parsed).verified
    assert manager.verify_presentation(presentation.to_dict()).verified


def test_tampered_presentation(student, holder_wallet, credential):
    manager = PresentationManager(student, student, holder_wallet)
    data = manager.create_presentation([credential.id]).to_dict()
    data["verifiableCredential"][0]["credentialSubject"]["gpa"] = 4.0

    report = manager.verify_presentation(data)

    assert not report.verified
    assert not report.checks["signature"]
    assert not report.checks["credentials"]


def test_presentation_of_revoked_credential(student, holder_wallet, credential):
    registry = InMemoryRevocationRegistry()
    registry.revoke(credential.id, "Revocata")
    manager = PresentationManager(student, student, holder_wallet, registry)

    report = manager.verify_presentation(manager.create_presentation([credential.id]))

    assert report.checks["signature"]
    assert not report.checks["credentials"]
    assert not report.credential_results[0].checks["revocation"]


def test_presentation_by_someone_else(university, holder_wallet, credential):
    manager = PresentationManager(university, university, holder_wallet)

    report = manager.verify_presentation(manager.create_presentation([credential.id]))

    assert report.checks["signature"]
    assert not report.checks["holder"]
    assert not report.verified


def test_presentation_preconditions(student, holder_wallet, university_did):
    manager = PresentationManager(student, student, holder_wallet)

    with pytest.raises(InputValidationError):
        manager.create_presentation([])
    with pytest.raises(InputValidationError):
        manager.create_presentation(["urn:uuid:sconosciuta"])
    with pytest.raises(KeyUnavailableError):
        manager.create_presentation(["x"], holder_did=university_did)
    with pytest.raises(KeyUnavailableError):
        PresentationManager(resolver=student).create_presentation(["x"])


@pytest.mark.parametrize("module", ["crypto", "identity", "credentials", "wallet"])
def test_logging_setup_is_idempotent(module):
    import importlib
    import logging

    package = importlib.import_module(module)
    setup = getattr(package, f"setup_{module}_logging")

    logger = setup(logging.DEBUG)
    setup(logging.DEBUG)

    assert logger.name == module
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1


def test_presentation_with_non_p256_holder_key(student, holder_wallet, credential):
    from cryptography.hazmat.primitives.asymmetric import ec

    class OtherCurveResolver:
        def resolve_public_key(self, did):
            return ec.generate_private_key(ec.SECP384R1()).public_key()

    presentation = PresentationManager(student, student, holder_wallet).create_presentation([credential.id])

    report = PresentationManager(resolver=OtherCurveResolver()).verify_presentation(presentation)

    assert not report.checks["signature"]
    assert not report.verified
    assert any("P-256" in e for e in report.errors)
