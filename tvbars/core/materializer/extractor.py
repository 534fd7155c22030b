"""Turns one raw event's ``records`` list into validated bar candidates."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from math import isfinite
from typing import Any

from tvbars.core.data.schema import BAR_MEASUREMENT_FIELDS
from tvbars.core.exceptions import RecordValidationError
from tvbars.core.models import Bar, RawEvent

BAR_KIND = "BAR"
DISCRIMINATOR_FIELDS = ("row_type", "kind")
DEDUP_FIELDS = ("dedup", "uid")

# Column ranges: tf_sec is INTEGER, the millisecond timestamps are BIGINT.
_INT32_MAX = 2**31 - 1
_INT64_MAX = 2**63 - 1


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    """A single element rejected by the extractor."""

    raw_event_id: int
    index: int
    field: str
    code: str
    message: str


@dataclass(slots=True, frozen=True)
class BarRecord:
    index: int
    bar: Bar


@dataclass(slots=True, frozen=True)
class UnknownRecord:
    index: int
    kind: str


@dataclass(slots=True, frozen=True)
class InvalidRecord:
    index: int
    issue: ValidationIssue


ParsedElement = BarRecord | UnknownRecord | InvalidRecord


@dataclass(slots=True)
class ExtractionResult:
    """Outcome of extracting one raw event."""

    raw_event_id: int
    bars: list[Bar] = field(default_factory=list)
    skipped_unknown: int = 0
    skipped_invalid: int = 0
    issues: list[ValidationIssue] = field(default_factory=list)


def as_object(value: Any) -> dict[str, Any] | None:
    """Return ``value`` as a mapping, decoding JSON text; anything else is ``None``."""

    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (str, bytes)):
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


def coerce_float(value: Any) -> float | None:
    """Lenient numeric coercion: absent, empty, boolean or non-numeric values become ``None``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if isfinite(number) else None


def coerce_int(value: Any) -> int | None:
    """Integral coercion; fractional values become ``None``."""

    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = coerce_float(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _epoch_ms(value: Any) -> int | None:
    number = coerce_int(value)
    if number is None or abs(number) > _INT64_MAX:
        return None
    return number


def _discriminator(element: Mapping[str, Any]) -> str:
    for name in DISCRIMINATOR_FIELDS:
        value = element.get(name)
        if value not in (None, ""):
            return str(value)
    return ""


def dedup_key(element: Mapping[str, Any], raw_event_id: int, index: int) -> str:
    """Explicit ``dedup``/``uid`` when present, else a key stable across replays."""

    for name in DEDUP_FIELDS:
        explicit = _text(element.get(name))
        if explicit:
            return explicit
    return f"{raw_event_id}:{index}"


def _validate_bar(element: Mapping[str, Any], index: int) -> tuple[str, int]:
    symbol = element.get("symbol")
    if not isinstance(symbol, str) or not symbol.strip():
        raise RecordValidationError("symbol must be a non-empty string", field="symbol", index=index)
    tf_sec = coerce_int(element.get("tf_sec"))
    if tf_sec is None or not 0 < tf_sec <= _INT32_MAX:
        raise RecordValidationError("tf_sec must be a positive integer", field="tf_sec", index=index)
    return symbol.strip(), tf_sec


def parse_element(event: RawEvent, index: int, value: Any) -> ParsedElement:
    """Classify one element of ``records`` and build its bar when it is a valid BAR."""

    element = as_object(value) or {}
    kind = _discriminator(element)
    if kind != BAR_KIND:
        return UnknownRecord(index=index, kind=kind)

    try:
        symbol, tf_sec = _validate_bar(element, index)
    except RecordValidationError as exc:
        return InvalidRecord(
            index=index,
            issue=ValidationIssue(
                raw_event_id=event.id,
                index=index,
                field=exc.field,
                code="INVALID_FIELD" if exc.field in element else "MISSING_FIELD",
                message=exc.message,
            ),
        )

    measurements = {name: coerce_float(element.get(name)) for name in BAR_MEASUREMENT_FIELDS}
    bar = Bar(
        dedup=dedup_key(element, event.id, index),
        raw_event_id=event.id,
        received_at=event.received_at,
        symbol=symbol,
        tf_sec=tf_sec,
        tf=_text(element.get("tf")),
        t_open_ms=_epoch_ms(element.get("t_open_ms")),
        t_close_ms=_epoch_ms(element.get("t_close_ms")),
        payload=element,
        **measurements,
    )
    return BarRecord(index=index, bar=bar)


def extract_bars(event: RawEvent) -> ExtractionResult:
    """Extract every BAR element of ``event``.

    Never raises for malformed content: unknown kinds and invalid elements
    are counted and skipped.
    """

    result = ExtractionResult(raw_event_id=event.id)
    payload = as_object(event.payload)
    records = payload.get("records") if payload else None
    if not isinstance(records, list):
        return result

    for index, value in enumerate(records):
        parsed = parse_element(event, index, value)
        if isinstance(parsed, BarRecord):
            result.bars.append(parsed.bar)
        elif isinstance(parsed, UnknownRecord):
            result.skipped_unknown += 1
        else:
            result.skipped_invalid += 1
            result.issues.append(parsed.issue)
    return result


__all__ = [
    "BAR_KIND",
    "BarRecord",
    "ExtractionResult",
    "InvalidRecord",
    "UnknownRecord",
    "ValidationIssue",
    "as_object",
    "coerce_float",
    "coerce_int",
    "dedup_key",
    "extract_bars",
    "parse_element",
]
