"""
Record Parser
=============
Parses the verified plaintext line into a VaccinationRecord.

The line holds eight ``;``-separated fields in fixed order:

    szczepienieId;wersjaZasobu;dataWydania;imiona;pierwszaLiteraNazwiska;
    skroconaDataUrodzenia;dataWaznosciDowodu;danaTechniczna

Fields are consumed strictly left to right. The first field that is absent
or fails to parse decides the error; later fields are never looked at.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Callable

from .errors import MalformedFieldError, MissingFieldError
from .models import LEAP_REFERENCE_YEAR, U64_MAX, FieldName, ShortDate, VaccinationRecord

logger = logging.getLogger(__name__)

SEPARATOR = ";"
DATE_FORMAT = "%d-%m-%Y"
SHORT_DATE_FORMAT = "%d-%m"

# ASCII digits with an optional leading plus sign
_UNSIGNED_PATTERN = re.compile(r"\+?[0-9]+")


# ─── Field Parsers ────────────────────────────────────────────────────────────


def _parse_unsigned(token: str, maximum: int) -> int:
    if not _UNSIGNED_PATTERN.fullmatch(token):
        raise ValueError(f"not an unsigned integer: {token!r}")
    value = int(token)
    if value > maximum:
        raise ValueError(f"out of range: {value}")
    return value


def parse_id(token: str) -> int:
    return _parse_unsigned(token, U64_MAX)


def parse_version(token: str) -> int:
    version = _parse_unsigned(token, 0xFF)
    # only version 1 is supported
    if version != 1:
        raise ValueError(f"unsupported record version {version}")
    return version


def parse_date(token: str) -> date:
    return datetime.strptime(token, DATE_FORMAT).date()


def parse_short_date(token: str) -> ShortDate:
    # strptime needs a year to accept 29-02
    parsed = datetime.strptime(f"{token}-{LEAP_REFERENCE_YEAR}", DATE_FORMAT)
    return ShortDate(day=parsed.day, month=parsed.month)


def parse_text(token: str) -> str:
    return token


def parse_initial(token: str) -> str:
    if not token:
        raise ValueError("empty initial")
    return token[0]


FIELD_TABLE: tuple[tuple[FieldName, Callable[[str], Any]], ...] = (
    (FieldName.ID, parse_id),
    (FieldName.VERSION, parse_version),
    (FieldName.ISSUE_DATE, parse_date),
    (FieldName.NAMES, parse_text),
    (FieldName.FIRST_SURNAME_INITIAL, parse_initial),
    (FieldName.SHORT_BIRTHDATE, parse_short_date),
    (FieldName.CERTIFICATE_EXPIRATION, parse_date),
    (FieldName.VACCINE_TYPE, parse_text),
)

_RECORD_ATTRIBUTES = {
    FieldName.ID: "id",
    FieldName.VERSION: "version",
    FieldName.ISSUE_DATE: "issue_date",
    FieldName.NAMES: "names",
    FieldName.FIRST_SURNAME_INITIAL: "first_surname_initial",
    FieldName.SHORT_BIRTHDATE: "short_birthdate",
    FieldName.CERTIFICATE_EXPIRATION: "certificate_expiration",
    FieldName.VACCINE_TYPE: "vaccine_type",
}


# ─── Parser ───────────────────────────────────────────────────────────────────


class RecordParser:
    """Ordered, stop-on-first-failure parser over ``FIELD_TABLE``."""

    def __init__(self, fields=FIELD_TABLE):
        self.fields = fields

    def parse(self, line: str) -> VaccinationRecord:
        """
        Parse one record line.

        A single trailing line terminator is ignored. Tokens beyond the
        eighth are ignored.

        Raises:
            MissingFieldError: The line ended before this field.
            MalformedFieldError: The field is present but invalid.
        """
        tokens = iter(_strip_terminator(line).split(SEPARATOR))
        values: dict[str, Any] = {}

        for name, parser in self.fields:
            token = next(tokens, None)
            if token is None:
                raise MissingFieldError(name)
            try:
                values[_RECORD_ATTRIBUTES[name]] = parser(token)
            except ValueError as e:
                logger.debug(f"Field {name.value} rejected: {e}")
                raise MalformedFieldError(name) from e

        return VaccinationRecord(**values)


def _strip_terminator(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith("\n"):
        return line[:-1]
    return line


def parse_record(line: str) -> VaccinationRecord:
    return RecordParser().parse(line)
