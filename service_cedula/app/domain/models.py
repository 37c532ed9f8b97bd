"""
Domain models for the Cédula Service.

``RegistryRecord`` is the internal, immutable form of one registry answer.
``ShapedResult`` is what callers receive; its wire names follow the
registry's own vocabulary (``exitosa``, ``codigo``, ``datos``...).
"""

from dataclasses import dataclass, fields, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.errors import UnsupportedViewError
from ..validation.cedula import NationalId


def clean_value(value: Optional[str]) -> Optional[str]:
    """Trim a registry value; blank or literal ``null`` becomes None."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "null":
        return None
    return value


MARITAL_STATUS_DESCRIPTIONS = {
    "C": "CASADO",
    "D": "DIVORCIADO",
    "S": "SOLTERO",
    "V": "VIUDO",
    "U": "UNION LIBRE",
    "SE": "SEPARADO",
}

STATUS_DESCRIPTIONS = {
    "N": "NO ATENDIDO",
    "P": "EN PROCESO",
    "T": "TERMINADO",
    "A": "APROBADO",
    "R": "RECHAZADO",
}


@dataclass(frozen=True)
class RegistryRecord:
    """One citizen record as reported by the registry. All values are raw strings."""

    names: Optional[str] = None
    first_surname: Optional[str] = None
    second_surname: Optional[str] = None
    birth_date: Optional[str] = None
    birth_place: Optional[str] = None
    expiration_date: Optional[str] = None
    sex: Optional[str] = None
    marital_status: Optional[str] = None
    age: Optional[str] = None
    nationality_code: Optional[str] = None
    nationality: Optional[str] = None
    municipality_code: Optional[str] = None
    id_sequence: Optional[str] = None
    occupation: Optional[str] = None
    spouse: Optional[str] = None
    spouse_id: Optional[str] = None
    father: Optional[str] = None
    mother: Optional[str] = None
    legacy_id: Optional[str] = None
    passport: Optional[str] = None
    photo_path: Optional[str] = None
    category: Optional[str] = None
    category_description: Optional[str] = None
    status: Optional[str] = None
    cause_code: Optional[str] = None
    disability_cause: Optional[str] = None
    cause_type: Optional[str] = None
    success: Optional[str] = None
    message: Optional[str] = None
    response_time: Optional[str] = None

    @property
    def reported_success(self) -> bool:
        value = clean_value(self.success)
        return value is not None and (value.lower() == "true" or value == "1")

    @property
    def is_successful_consultation(self) -> bool:
        """Upstream reported success and both name fields are present."""
        return (
            self.reported_success
            and clean_value(self.names) is not None
            and clean_value(self.first_surname) is not None
        )

    @property
    def has_photo(self) -> bool:
        return clean_value(self.photo_path) is not None

    @property
    def marital_status_description(self) -> Optional[str]:
        code = clean_value(self.marital_status)
        if code is None:
            return None
        return MARITAL_STATUS_DESCRIPTIONS.get(code.upper(), code)

    @property
    def status_description(self) -> Optional[str]:
        code = clean_value(self.status)
        if code is None:
            return None
        return STATUS_DESCRIPTIONS.get(code.upper(), code)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{
            key: (str(value) if value is not None else None)
            for key, value in data.items()
            if key in known
        })


class View(str, Enum):
    """Named projections of a RegistryRecord."""

    COMPLETE = "completo"
    BASIC = "basico"
    PERSONAL = "personal"
    FAMILIAL = "familiar"

    @classmethod
    def supported(cls) -> tuple:
        return tuple(view.value for view in cls)

    @classmethod
    def parse(cls, value: Optional[str]) -> "View":
        """Resolve a wire name case-insensitively. Absent or blank means ``completo``."""
        if value is None or not value.strip():
            return cls.COMPLETE
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnsupportedViewError(value, cls.supported()) from None


@dataclass(frozen=True)
class QueryRequest:
    """A validated lookup request."""

    national_id: NationalId
    view: View = View.COMPLETE
    include_photo: bool = True


class PersonData(BaseModel):
    """View-filtered citizen data. Fields outside the view stay None and are not serialized."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    names: Optional[str] = Field(default=None, alias="nombres")
    first_surname: Optional[str] = Field(default=None, alias="primerApellido")
    second_surname: Optional[str] = Field(default=None, alias="segundoApellido")
    full_name: Optional[str] = Field(default=None, alias="nombreCompleto")
    birth_date: Optional[str] = Field(default=None, alias="fechaNacimiento")
    birth_place: Optional[str] = Field(default=None, alias="lugarNacimiento")
    expiration_date: Optional[str] = Field(default=None, alias="fechaExpiracion")
    sex: Optional[str] = Field(default=None, alias="sexo")
    marital_status: Optional[str] = Field(default=None, alias="estadoCivil")
    marital_status_code: Optional[str] = Field(default=None, alias="codigoEstadoCivil")
    age: Optional[str] = Field(default=None, alias="edad")
    nationality_code: Optional[str] = Field(default=None, alias="codigoNacionalidad")
    nationality: Optional[str] = Field(default=None, alias="nacionalidad")
    municipality_code: Optional[str] = Field(default=None, alias="municipioCedula")
    id_sequence: Optional[str] = Field(default=None, alias="secuenciaCedula")
    occupation: Optional[str] = Field(default=None, alias="ocupacion")
    spouse: Optional[str] = Field(default=None, alias="conyugue")
    spouse_id: Optional[str] = Field(default=None, alias="cedulaConyugue")
    father: Optional[str] = Field(default=None, alias="padre")
    mother: Optional[str] = Field(default=None, alias="madre")
    legacy_id: Optional[str] = Field(default=None, alias="cedulaVieja")
    passport: Optional[str] = Field(default=None, alias="pasaporte")
    category: Optional[str] = Field(default=None, alias="categoria")
    category_description: Optional[str] = Field(default=None, alias="descripcionCategoria")
    status: Optional[str] = Field(default=None, alias="estatus")
    status_code: Optional[str] = Field(default=None, alias="codigoEstatus")
    cause_code: Optional[str] = Field(default=None, alias="codigoCausa")
    disability_cause: Optional[str] = Field(default=None, alias="descripcionCausaInhabilidad")
    cause_type: Optional[str] = Field(default=None, alias="descripcionTipoCausa")
    registry_response_time: Optional[str] = Field(default=None, alias="tiempoRespuestaRegistro")


class PhotoInfo(BaseModel):
    """Photo availability for a citizen."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    available: bool = Field(alias="disponible")
    url: Optional[str] = Field(default=None, alias="url")
    message: str = Field(alias="mensaje")

    @classmethod
    def found(cls, url: str) -> "PhotoInfo":
        return cls(available=True, url=url, message="Foto encontrada y disponible")

    @classmethod
    def missing(cls, reason: Optional[str] = None) -> "PhotoInfo":
        return cls(available=False, message=reason or "Foto no disponible")


class ShapedResult(BaseModel):
    """Final answer of the query pipeline."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    success: bool = Field(alias="exitosa")
    message: str = Field(alias="mensaje")
    code: str = Field(alias="codigo")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    elapsed_ms: int = Field(default=0, alias="tiempoRespuesta")
    national_id: Optional[str] = Field(default=None, alias="cedulaConsultada")
    person: Optional[PersonData] = Field(default=None, alias="datos")
    photo: Optional[PhotoInfo] = Field(default=None, alias="foto")

    http_status: int = Field(default=200, exclude=True)
    retry_after: Optional[int] = Field(default=None, exclude=True)
    cached: bool = Field(default=False, exclude=True)
    rate_limit_remaining: Optional[int] = Field(default=None, exclude=True)

    @classmethod
    def ok(cls, national_id: str, person: PersonData, photo: Optional[PhotoInfo],
           elapsed_ms: int, cached: bool = False,
           rate_limit_remaining: Optional[int] = None) -> "ShapedResult":
        return cls(
            success=True,
            message="Consulta realizada exitosamente",
            code="SUCCESS",
            elapsed_ms=elapsed_ms,
            national_id=national_id,
            person=person,
            photo=photo,
            cached=cached,
            rate_limit_remaining=rate_limit_remaining,
        )

    @classmethod
    def failure(cls, code: str, message: str, national_id: Optional[str], elapsed_ms: int,
                http_status: int, retry_after: Optional[int] = None) -> "ShapedResult":
        return cls(
            success=False,
            message=message,
            code=code,
            elapsed_ms=elapsed_ms,
            national_id=national_id,
            http_status=http_status,
            retry_after=retry_after,
        )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready body using wire names, omitting absent values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
