"""
Data Models
===========
Pydantic models for the decoded vaccination record and pipeline output.
All models are immutable and serializable to JSON.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

# Leap year used to validate day/month pairs when the year is unknown,
# so 29-02 is accepted.
LEAP_REFERENCE_YEAR = 2000

U64_MAX = 2**64 - 1


# ─── Enums ────────────────────────────────────────────────────────────────────


class FieldName(str, Enum):
    """Record fields in wire order, valued by their source schema label."""
    ID = "szczepienieId"
    VERSION = "wersjaZasobu"
    ISSUE_DATE = "dataWydania"
    NAMES = "imiona"
    FIRST_SURNAME_INITIAL = "pierwszaLiteraNazwiska"
    SHORT_BIRTHDATE = "skroconaDataUrodzenia"
    CERTIFICATE_EXPIRATION = "dataWaznosciDowodu"
    VACCINE_TYPE = "danaTechniczna"


class InputType(str, Enum):
    """Container forms a certificate can arrive in."""
    PDF = "pdf"
    IMAGE = "image"
    BASE64 = "base64"
    ENCRYPTED = "encrypted"
    PLAINTEXT = "plaintext"


# ─── Record Models ────────────────────────────────────────────────────────────


class ShortDate(BaseModel):
    """
    Day and month without a known year.

    The source data never carries the birth year; ``year`` stays ``None``
    rather than holding a made-up value.
    """
    model_config = ConfigDict(frozen=True)

    day: int = Field(ge=1, le=31)
    month: int = Field(ge=1, le=12)
    year: Optional[int] = None

    @model_validator(mode="after")
    def _check_calendar(self) -> "ShortDate":
        # raises ValueError for e.g. 31-04 or 30-02
        date(self.year or LEAP_REFERENCE_YEAR, self.month, self.day)
        return self

    @property
    def has_year(self) -> bool:
        return self.year is not None

    def __str__(self) -> str:
        if self.year is None:
            return f"{self.day:02d}-{self.month:02d}"
        return f"{self.day:02d}-{self.month:02d}-{self.year:04d}"


class VaccinationRecord(BaseModel):
    """
    A fully validated vaccination certificate record.
    Either all eight fields are valid or no record exists.
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0, le=U64_MAX)
    version: int = Field(ge=1, le=1)
    issue_date: date
    names: str
    first_surname_initial: str = Field(min_length=1, max_length=1)
    short_birthdate: ShortDate
    certificate_expiration: date
    vaccine_type: str

    def has_expired(self, on: Optional[date] = None) -> bool:
        """True once ``on`` (default: today) is past the expiration date."""
        return (on or date.today()) > self.certificate_expiration


# ─── Pipeline Output ──────────────────────────────────────────────────────────


class PdfImageInfo(BaseModel):
    """Description of one image XObject referenced by a PDF page."""
    page_number: int = Field(ge=1)
    xref: int
    width: int
    height: int
    bits_per_component: int
    colorspace: str = ""
    has_soft_mask: bool = False


class DecodeResult(BaseModel):
    """Outcome of a successful decode run."""
    record: VaccinationRecord
    input_type: InputType
    source: str = Field(description="Input path the record was read from")
    plaintext: str = Field(description="Verified record line")

    @computed_field
    @property
    def expired(self) -> bool:
        return self.record.has_expired()
