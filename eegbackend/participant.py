"""Participants of an energy community and their metering points."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from eegbackend.eeg import Address

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_FRACTION = re.compile(r"\.(\d+)")


def _text(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _format_time(moment: datetime) -> str:
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if offset is None:
        return text
    if not offset:
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{mins:02d}"


def _parse_time(text: Any) -> datetime:
    if not isinstance(text, str):
        raise ValueError(f"timestamp must be a string, got {text!r}")
    normalised = text.replace("z", "Z")
    if normalised.endswith("Z"):
        normalised = normalised[:-1] + "+00:00"
    normalised = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalised, count=1)
    try:
        moment = datetime.fromisoformat(normalised)
    except ValueError as exc:
        raise ValueError(f"invalid RFC 3339 timestamp: {text!r}") from exc
    if moment.tzinfo is None or "T" not in normalised:
        raise ValueError(f"invalid RFC 3339 timestamp: {text!r}")
    return moment


class DirectionType(str, Enum):
    CONSUMPTION = "CONSUMPTION"
    GENERATOR = "GENERATION"
    UNKNOWN = "UNKNOWN"


class StatusType(str, Enum):
    NEW = "NEW"
    INIT = "INIT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"
    INVALID = "INVALID"
    ARCHIVED = "ARCHIVED"
    ABORTED = "ABORTED"
    RESTORE = "RESTORE"


def _direction(value: str) -> DirectionType | str:
    try:
        return DirectionType(value)
    except ValueError:
        return value


@dataclass
class ContactInfo:
    phone: str | None = None
    email: str | None = None


@dataclass
class BankInfo:
    iban: str | None = None
    owner: str | None = None
    bank_name: str | None = None
    mandate_reference: str | None = None
    mandate_date: date | None = None
    sepa_direct_debit: str | None = None


@dataclass
class MeterState:
    """Activation window of a metering point; active and flag stay internal."""

    active_since: date | None = None
    inactive_since: date | None = None
    active: int = 0
    flag: int = 0


@dataclass
class MeteringPoint:
    metering_point: str = ""
    participant_id: str = ""
    consent_id: str | None = None
    transformer: str | None = None
    direction: DirectionType | str = ""
    status: StatusType | str = ""
    status_code: int | None = None
    tariff_id: str | None = None
    equipment_number: str | None = None
    equipment_name: str | None = None
    inverter_id: str | None = None
    street: str | None = None
    street_number: str | None = None
    city: str | None = None
    zip: str | None = None
    registered_since: datetime = _ZERO_TIME
    modified_at: datetime = _ZERO_TIME
    modified_by: str | None = None
    grid_operator_id: str | None = None
    grid_operator_name: str | None = None
    process_state: str = ""
    state: MeterState | None = None
    part_fact: int = 0
    activation_mode: str = ""
    activation_code: str = ""
    allocation_factor: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON wire form of the metering point."""
        wire: dict[str, Any] = {
            "meteringPoint": self.metering_point,
            "participantId": self.participant_id,
            "consentId": self.consent_id,
            "transformer": self.transformer,
            "direction": _text(self.direction),
            "status": _text(self.status),
            "statusCode": self.status_code,
            "tariff_id": self.tariff_id,
            "equipmentNumber": self.equipment_number,
            "equipmentName": self.equipment_name,
            "inverterid": self.inverter_id,
            "street": self.street,
            "streetNumber": self.street_number,
            "city": self.city,
            "zip": self.zip,
            "registeredSince": _format_time(self.registered_since),
            "modifiedAt": _format_time(self.modified_at),
            "modifiedBy": self.modified_by,
            "gridOperatorId": self.grid_operator_id,
            "gridOperatorName": self.grid_operator_name,
            "processState": self.process_state,
        }
        if self.state is not None:
            wire["participantState"] = {
                "activeSince": _iso_date(self.state.active_since),
                "inactiveSince": _iso_date(self.state.inactive_since),
            }
        wire.update(
            partFact=self.part_fact,
            activationMode=self.activation_mode,
            activationCode=self.activation_code,
            allocationFactor=self.allocation_factor,
        )
        omit = {
            "participantId",
            "direction",
            "status",
            "processState",
            "partFact",
            "activationMode",
            "activationCode",
        }
        return {k: v for k, v in wire.items() if k not in omit or v}


def _iso_date(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class EegParticipant:
    id: uuid.UUID | None = None
    participant_number: str | None = None
    business_role: str = ""
    role: str = ""
    first_name: str = ""
    last_name: str = ""
    title_before: str = ""
    title_after: str = ""
    participant_since: datetime = _ZERO_TIME
    vat_number: str = ""
    tax_number: str = ""
    company_register_number: str | None = None
    contact: ContactInfo = field(default_factory=ContactInfo)
    billing_address: Address = field(default_factory=Address)
    resident_address: Address = field(default_factory=Address)
    bank_account: BankInfo = field(default_factory=BankInfo)
    metering_points: list[MeteringPoint] = field(default_factory=list)
    tariff_id: str | None = None
    status: StatusType | str = ""
    version: int = 0
    created_by: str = ""

    def meter_ids(self) -> list[str]:
        """Identifiers of the participant's metering points, in order."""
        return [point.metering_point for point in self.metering_points]


@dataclass
class ChangePartitionFactorRequest:
    """One metering point whose partition factor is to change."""

    metering_point: str = ""
    direction: DirectionType | str = ""
    grid_operator_id: str | None = None
    activation: datetime = _ZERO_TIME
    part_fact: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangePartitionFactorRequest:
        """Build a request from its decoded JSON object."""
        meter = data.get("meter") or ""
        direction = data.get("direction") or ""
        operator = data.get("gridOperatorId")
        for name, value in (("meter", meter), ("direction", direction)):
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a string, got {value!r}")
        if operator is not None and not isinstance(operator, str):
            raise ValueError(f"gridOperatorId must be a string, got {operator!r}")
        part_fact = data.get("partFact", 0)
        if part_fact is None:
            part_fact = 0
        if isinstance(part_fact, bool) or not isinstance(part_fact, int):
            raise ValueError(f"partFact must be an integer, got {part_fact!r}")
        activation = data.get("activation")
        return cls(
            metering_point=meter,
            direction=_direction(direction),
            grid_operator_id=operator,
            activation=_ZERO_TIME if activation is None else _parse_time(activation),
            part_fact=part_fact,
        )