import pytest

from credentials.issuer import AcademicCredentialIssuer, IssuerConfiguration
from identity.did_manager import DIDManager
from wallet.selective_disclosure import SelectiveDisclosureManager
from wallet.storage import InMemoryStorage


class FakeClock:
    """Orologio monotono controllabile dai test."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def university(storage):
    manager = DIDManager(storage)
    manager.create_did("Università di Salerno")
    return manager


@pytest.fixture
def student(storage):
    manager = DIDManager(storage)
    manager.create_did("Mario Rossi")
    return manager


@pytest.fixture
def university_did(university):
    return university.get_active_did()


@pytest.fixture
def student_did(student):
    return student.get_active_did()


@pytest.fixture
def sample_courses():
    return [
        {"name": "Algoritmi", "grade": "A", "credits": 3, "year": 2023},
        {"name": "Reti", "grade": "B", "credits": 3, "year": 2024},
    ]


@pytest.fixture
def issuer(university, storage):
    return AcademicCredentialIssuer(university, storage, IssuerConfiguration())


@pytest.fixture
def credential(issuer, student_did, sample_courses):
    return issuer.issue_credential(
        student_did, "Mario Rossi", "Università di Salerno", "Informatica", sample_courses
    )


@pytest.fixture
def disclosure(university):
    return SelectiveDisclosureManager(resolver=university)


@pytest.fixture
def clock():
    return FakeClock()
