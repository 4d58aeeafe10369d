"""Energy community records, mail-template settings, process history and tariffs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _text(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _format_time(moment: datetime) -> str:
    """Render a timestamp in RFC 3339 form with trailing fraction zeros removed."""
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


def _drop_empty(mapping: dict[str, Any], keys: set[str]) -> dict[str, Any]:
    return {k: v for k, v in mapping.items() if k not in keys or v}


class AreaType(str, Enum):
    LOCAL = "LOCAL"
    REGIONAL = "REGIONAL"
    BEG = "BEG"
    GEA = "GEA"


class AllocationModeType(str, Enum):
    STATIC = "STATIC"
    DYNAMIC = "DYNAMIC"


class AddressType(str, Enum):
    BILLING = "BILLING"
    RESIDENCE = "RESIDENCE"


@dataclass
class Address:
    type: AddressType | str = ""
    street: str | None = None
    street_number: str | None = None
    zip: str | None = None
    city: str | None = None


@dataclass
class EegAddress:
    street: str = ""
    street_number: str = ""
    zip: str = ""
    city: str = ""


@dataclass
class Contact:
    phone: str | None = None
    email: str | None = None


@dataclass
class AccountInfo:
    iban: str | None = None
    owner: str | None = None
    bank_name: str | None = None
    creditor_id: str | None = None
    bic: str | None = None
    sepa: bool = False
    bank_purpose: str | None = None


@dataclass
class Optionals:
    website: str | None = None


@dataclass
class Eeg:
    """An energy community, identified by its tenant."""

    id: str = ""
    name: str = ""
    description: str = ""
    business_nr: str | None = None
    area: AreaType | str = ""
    legal: str = ""
    operator_name: str = ""
    community_id: str = ""
    grid_operator: str = ""
    rc_number: str = ""
    allocation_mode: str = ""
    settlement_interval: str = ""
    provider_business_nr: int | None = None
    tax_number: str | None = None
    vat_number: str | None = None
    contact_person: str | None = None
    address: EegAddress = field(default_factory=EegAddress)
    account_info: AccountInfo = field(default_factory=AccountInfo)
    contact: Contact = field(default_factory=Contact)
    optionals: Optionals = field(default_factory=Optionals)
    periods: list[int] = field(default_factory=list)
    online: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON wire form of the community."""
        address = _drop_empty(
            {
                "street": self.address.street,
                "streetNumber": self.address.street_number,
                "zip": self.address.zip,
                "city": self.address.city,
            },
            {"street", "streetNumber", "zip", "city"},
        )
        account = self.account_info
        wire = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "businessNr": self.business_nr,
            "area": _text(self.area),
            "legal": self.legal,
            "operatorName": self.operator_name,
            "communityId": self.community_id,
            "gridOperator": self.grid_operator,
            "rcNumber": self.rc_number,
            "allocationMode": self.allocation_mode,
            "settlementInterval": self.settlement_interval,
            "providerBusinessNr": self.provider_business_nr,
            "taxNumber": self.tax_number,
            "vatNumber": self.vat_number,
            "contactPerson": self.contact_person,
            "address": address,
            "accountInfo": {
                "iban": account.iban,
                "owner": account.owner,
                "bankName": account.bank_name,
                "creditorId": account.creditor_id,
                "bic": account.bic,
                "sepa": account.sepa,
                "bankPurpose": account.bank_purpose,
            },
            "contact": {"phone": self.contact.phone, "email": self.contact.email},
            "optionals": {"website": self.optionals.website},
            "periods": list(self.periods),
            "online": self.online,
        }
        return _drop_empty(
            wire,
            {
                "name",
                "legal",
                "operatorName",
                "communityId",
                "gridOperator",
                "allocationMode",
                "settlementInterval",
                "periods",
            },
        )


@dataclass
class EegNotification:
    id: int = 0
    msg_type: str = ""
    process: str = ""
    message: Any = None
    date: datetime = _ZERO_TIME


@dataclass
class InlinePicture:
    filepath: str = ""
    content_id: str = ""


@dataclass
class ActivationMailTemplate:
    template_file: str = ""
    inline_pictures: list[InlinePicture] = field(default_factory=list)


@dataclass
class EdaProcessHistory:
    tenant: str = ""
    conversation_id: str = ""
    process_type: str = ""
    date: datetime = _ZERO_TIME
    protocol: str | None = None
    issuer: str = ""
    message_bytes: bytes = b""
    message_map: dict[str, Any] = field(default_factory=dict)
    direction: str = ""


class BillingPeriod(str, Enum):
    ANNUAL = "annual"
    MONTHLY = "monthly"
    SEMIANNUAL = "semiannual"
    QUARTERLY = "quarterly"


class TariffModelType(str, Enum):
    EEG = "EEG"
    VZP = "VZP"
    EZP = "EZP"
    AKONTO = "AKONTO"


@dataclass
class Tariff:
    """A billing tariff of a community."""

    id: uuid.UUID | None = None
    version: int = 0
    type: TariffModelType | str = ""
    name: str = ""
    billing_period: str = ""
    use_vat: bool = False
    vat_supplementary_text: str = ""
    vat_in_percent: int = 0
    account_net_amount: int = 0
    account_gross_amount: int = 0
    participant_fee: float = 0.0
    base_fee: int = 0
    business_nr: int | None = None
    cent_per_kwh: float = 0.0
    free_kwh: int = 0
    discount: int = 0
    use_metering_point_fee: bool = False
    metering_point_fee: float | None = None
    metering_point_vat: int | None = None
    inactive_since: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON wire form of the tariff."""
        wire = {
            "id": str(self.id) if self.id is not None else "",
            "version": self.version,
            "type": _text(self.type),
            "name": self.name,
            "billingPeriod": _text(self.billing_period),
            "useVat": self.use_vat,
            "vatSupplementaryText": self.vat_supplementary_text,
            "vatInPercent": self.vat_in_percent,
            "accountNetAmount": self.account_net_amount,
            "accountGrossAmount": self.account_gross_amount,
            "participantFee": self.participant_fee,
            "baseFee": self.base_fee,
            "businessNr": self.business_nr,
            "centPerKWh": self.cent_per_kwh,
            "freeKWh": self.free_kwh,
            "discount": self.discount,
            "useMeteringPointFee": self.use_metering_point_fee,
            "meteringPointFee": self.metering_point_fee,
            "meteringPointVat": self.metering_point_vat,
            "inactiveSince": (
                _format_time(self.inactive_since) if self.inactive_since is not None else None
            ),
        }
        return _drop_empty(wire, {"vatSupplementaryText", "freeKWh", "discount"})