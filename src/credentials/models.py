"""
Modelli dati per le credenziali accademiche utilizzando Pydantic V2.

Questo modulo definisce le strutture dati principali per:
- Credenziali verificabili (formato W3C semplificato)
- Corsi sostenuti e calcolo della media ponderata (GPA)
- Prova di integrità (firma ECDSA) allegata alla credenziale

Il credentialSubject è una mappa ordinata nome attributo -> valore, così
che il motore di divulgazione selettiva possa iterarla genericamente;
gli attributi noti sono esposti tramite accessori tipizzati.
"""

import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crypto.exceptions import InputValidationError


CREDENTIAL_CONTEXT = [
    "https://www.w3.org/2018/credentials/v1",
    "https://www.w3.org/2018/credentials/examples/v1"
]
CREDENTIAL_TYPE = ["VerifiableCredential", "AcademicCredential"]

PROOF_TYPE = "EcdsaSecp256r1Signature2019"
PROOF_PURPOSE = "assertionMethod"

# Tabella di conversione voto -> punti (scala 4.0)
GRADE_POINTS = {
    'A+': 4.0, 'A': 4.0, 'A-': 3.7,
    'B+': 3.3, 'B': 3.0, 'B-': 2.7,
    'C+': 2.3, 'C': 2.0, 'C-': 1.7,
    'D': 1.0, 'F': 0.0
}


class Course(BaseModel):
    """Rappresenta un corso sostenuto."""
    name: str = Field(..., min_length=1, description="Nome del corso")
    grade: str = Field(..., description="Voto letterale (A+ ... F)")
    credits: float = Field(default=0, ge=0, description="Crediti del corso")
    year: Optional[int] = Field(None, description="Anno di frequenza")

    @field_validator('grade')
    @classmethod
    def normalize_grade(cls, v: str) -> str:
        """Normalizza il voto (spazi e maiuscole)."""
        return v.strip().upper()

    def grade_points(self) -> float:
        """Punti del voto; voti sconosciuti valgono 0."""
        return GRADE_POINTS.get(self.grade, 0.0)

    def to_attribute(self) -> Dict[str, Any]:
        """Forma JSON inserita nel credentialSubject."""
        return self.model_dump(mode='json', exclude_none=True)


CourseInput = Union[Course, Dict[str, Any]]


def _coerce_courses(courses: Optional[Sequence[CourseInput]]) -> List[Course]:
    if courses is None:
        return []
    try:
        return [c if isinstance(c, Course) else Course.model_validate(c) for c in courses]
    except ValueError as e:
        raise InputValidationError(f"Corso non valido: {e}")


def calculate_gpa(courses: Optional[Sequence[CourseInput]]) -> float:
    """
    Calcola la media ponderata sui crediti.

    Args:
        courses: Lista di corsi (modelli o dizionari)

    Returns:
        GPA arrotondato a 2 decimali; 0 se non ci sono corsi o crediti
    """
    parsed = _coerce_courses(courses)

    total_points = 0.0
    total_credits = 0.0
    for course in parsed:
        total_points += course.grade_points() * course.credits
        total_credits += course.credits

    if total_credits <= 0:
        return 0
    return round(total_points / total_credits, 2)


def build_credential_subject(subject_did: str, subject_name: str, institution: str,
                             degree: str, courses: Optional[Sequence[CourseInput]]) -> Dict[str, Any]:
    """Costruisce il credentialSubject nell'ordine di emissione."""
    if not subject_did:
        raise InputValidationError("Identificativo dello studente obbligatorio")

    parsed = _coerce_courses(courses)
    return {
        "id": subject_did,
        "name": subject_name,
        "institution": institution,
        "degree": degree,
        "courses": [c.to_attribute() for c in parsed],
        "gpa": calculate_gpa(parsed),
    }


class Proof(BaseModel):
    """Prova di integrità allegata a credenziali e presentazioni."""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(default=PROOF_TYPE)
    created: str = Field(..., description="Timestamp della firma")
    verification_method: str = Field(..., alias="verificationMethod")
    proof_purpose: str = Field(default=PROOF_PURPOSE, alias="proofPurpose")
    signature_value: str = Field(..., alias="signatureValue",
                                 description="Firma r||s in esadecimale")

    def controller(self) -> str:
        """Identificativo che precede il riferimento alla chiave."""
        return self.verification_method.split('#', 1)[0]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True)


class Credential(BaseModel):
    """
    Credenziale accademica verificabile.

    Creata una sola volta all'emissione e mai modificata: non esiste
    un'operazione di aggiornamento, solo la cancellazione dallo storage.
    """
    model_config = ConfigDict(populate_by_name=True)

    context: List[str] = Field(default_factory=lambda: list(CREDENTIAL_CONTEXT), alias="@context")
    id: str = Field(..., description="Identificativo urn:uuid")
    type: List[str] = Field(default_factory=lambda: list(CREDENTIAL_TYPE))
    issuer: str = Field(..., description="DID dell'università emittente")
    issuance_date: str = Field(..., alias="issuanceDate")
    expiration_date: Optional[str] = Field(None, alias="expirationDate")
    credential_subject: Dict[str, Any] = Field(..., alias="credentialSubject")
    proof: Optional[Proof] = None

    @field_validator('credential_subject')
    @classmethod
    def validate_subject(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """Il soggetto deve identificare lo studente."""
        if not isinstance(v.get('id'), str) or not v['id']:
            raise ValueError("credentialSubject.id obbligatorio")
        return v

    # Accessori tipizzati

    @property
    def subject_id(self) -> str:
        return self.credential_subject['id']

    @property
    def subject_name(self) -> Optional[str]:
        return self.credential_subject.get('name')

    @property
    def institution(self) -> Optional[str]:
        return self.credential_subject.get('institution')

    @property
    def degree(self) -> Optional[str]:
        return self.credential_subject.get('degree')

    @property
    def courses(self) -> List[Course]:
        return _coerce_courses(self.credential_subject.get('courses') or [])

    @property
    def gpa(self) -> Optional[float]:
        value = self.credential_subject.get('gpa')
        return float(value) if value is not None else None

    def attribute_names(self) -> List[str]:
        """Nomi degli attributi di primo livello, nell'ordine del soggetto."""
        return list(self.credential_subject.keys())

    def to_dict(self) -> Dict[str, Any]:
        """Converte la credenziale nel formato di interscambio."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)

    def to_json(self, **kwargs) -> str:
        """Converte la credenziale in formato JSON."""
        return self.model_dump_json(by_alias=True, exclude_none=True, **kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Credential':
        """Crea un'istanza da dizionario."""
        return cls.model_validate(data)

    @classmethod
    def from_json(cls, json_str: str) -> 'Credential':
        """Crea un'istanza da stringa JSON."""
        return cls.model_validate_json(json_str)

    def get_summary(self) -> Dict[str, Any]:
        """Riassunto della credenziale per visualizzazione rapida."""
        return {
            'credential_id': self.id,
            'issuer': self.issuer,
            'subject': self.subject_id,
            'name': self.subject_name,
            'institution': self.institution,
            'degree': self.degree,
            'total_courses': len(self.credential_subject.get('courses') or []),
            'gpa': self.gpa,
            'issued_at': self.issuance_date,
            'expires_at': self.expiration_date,
            'signed': self.proof is not None
        }


CredentialLike = Union[Credential, Dict[str, Any]]


def credential_to_dict(credential: CredentialLike) -> Dict[str, Any]:
    """Restituisce la forma dizionario di una credenziale (modello o JSON già parsato)."""
    if isinstance(credential, Credential):
        return credential.to_dict()
    if isinstance(credential, dict):
        return credential
    raise InputValidationError(f"Credenziale non supportata: {type(credential).__name__}")


def expiration_from_validity(issued_at: datetime.datetime, validity_days: Optional[int]) -> Optional[datetime.datetime]:
    """Calcola la scadenza a partire dai giorni di validità."""
    if not validity_days:
        return None
    return issued_at + datetime.timedelta(days=validity_days)
