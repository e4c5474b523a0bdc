# app/models.py
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class RelativeRecord(BaseModel):
    """One affected relative, as sent by the front-end (Portuguese keys)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    relation: str = Field(alias="grau")
    cancer_type: str = Field(alias="tipoCancer")
    age_at_diagnosis: int = Field(alias="idadeDiagnostico", ge=0)


class ReportRequest(BaseModel):
    """Input of the PDF report. Never mutated while rendering."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    subject_name: str = Field(alias="nome", min_length=1)
    subject_age: int = Field(alias="idade", ge=0)
    personal_history: str = Field(default="", alias="historicoPessoal")
    relatives: Tuple[RelativeRecord, ...] = Field(default=(), alias="familiares")
    meets_referral_criteria: bool = Field(default=False, alias="precisaPesquisaOncogenetica")


# Proxy payloads: everything optional so the routers can answer 400 with the
# name of the missing field, like the front-end expects.

class RegisterRequest(BaseModel):
    usuarioId: Optional[int] = None
    nome: Optional[str] = None
    email: Optional[str] = None
    senha: Optional[str] = None
    cep: Optional[str] = None
    pais: Optional[str] = None
    cidade: Optional[str] = None
    rua: Optional[str] = None
    numeroRua: Optional[Any] = None
    telefone: Optional[str] = None
    celular: Optional[str] = None
    profissionalDaSaude: Optional[Any] = None
    graduacao: Optional[str] = None
    receberEmail: Optional[Any] = None

    def to_upstream(self) -> dict:
        return {
            "usuarioId": self.usuarioId or 0,
            "nome": self.nome,
            "email": self.email,
            "senha": self.senha,
            "cep": self.cep,
            "pais": self.pais,
            "cidade": self.cidade,
            "rua": self.rua,
            "numeroRua": self.numeroRua,
            "telefone": self.telefone,
            "celular": self.celular,
            "profissionalDaSaude": bool(self.profissionalDaSaude),
            "graduacao": self.graduacao or "",
            "receberEmail": bool(self.receberEmail),
        }


class QuizPayload(BaseModel):
    idUser: Optional[Any] = None
    idQuiz: Optional[Any] = None
    usuariPrincipal: Optional[Any] = None
    mae: Optional[Any] = None
    pai: Optional[Any] = None
    filhosList: Optional[List[Any]] = None
    netosList: Optional[List[Any]] = None
    irmaosList: Optional[List[Any]] = None
    sobrinhosList: Optional[List[Any]] = None
    tiosList: Optional[List[Any]] = None
    avosList: Optional[List[Any]] = None
    primosList: Optional[List[Any]] = None
    outroFamiliarList: Optional[List[Any]] = None

    def to_upstream(self) -> dict:
        # Unset keys are sent as null, matching what the upstream has always received
        return self.model_dump()


def first_missing(payload: BaseModel, fields: List[str]) -> Optional[str]:
    """Name of the first required field that is absent or empty, if any."""
    for field in fields:
        value = getattr(payload, field, None)
        # Empty containers still count as present
        if value is None or value is False or value == "" or value == 0:
            return field
    return None
