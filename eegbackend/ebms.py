"""EBMS market messages exchanged with the EDA communication service."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from eegbackend.participant import DirectionType


class EbMsMessageType(str, Enum):
    EBMS_ENERGY_FILE_RESPONSE = "DATEN_CRMSG"
    EBMS_ONLINE_REG_INIT = "ANFORDERUNG_ECON"
    EBMS_OFFLINE_REG_INIT = "ANFORDERUNG_ECOF"
    EBMS_REQ_CHANGE_PARTFACT = "ANFORDERUNG_CPF"
    EBMS_ONLINE_REG_ANSWER = "ANTWORT_ECON"
    EBMS_ONLINE_REG_REJECTION = "ABLEHNUNG_ECON"
    EBMS_ONLINE_REG_APPROVAL = "ZUSTIMMUNG_ECON"
    EBMS_ONLINE_REG_COMPLETION = "ABSCHLUSS_ECON"
    EBMS_ZP_LIST = "ANFORDERUNG_ECP"
    EBMS_ZP_SYNC = "ANFORDERUNG_PT"
    EBMS_ZP_RES = "ANTWORT_PT"
    EBMS_ZP_REJ = "ABLEHNUNG_PT"
    EBMS_ZP_LIST_RESPONSE = "SENDEN_ECP"
    EBMS_ZP_LIST_REJECTION = "ABLEHNUNG_ECP"
    EBMS_ANS_CHANGE_PARTFACT = "ANTWORT_CPF"
    EBMS_REJ_CHANGE_PARTFACT = "ABLEHNUNG_CPF"
    EBMS_AUFHEBUNG_CCMI = "AUFHEBUNG_CCMI"
    EBMS_AUFHEBUNG_CCMS = "AUFHEBUNG_CCMS"
    EBMS_AUFHEBUNG_CCMC = "AUFHEBUNG_CCMC"
    EBMS_ABLEHNUNG_CCMS = "ABLEHNUNG_CCMS"
    EBMS_ANTWORT_CCMS = "ANTWORT_CCMS"
    EBMS_EEG_BASE_DATA = "ANFORDERUNG_GN"
    EBMS_ERROR_MESSAGE = "ERROR_MESSAGE"


class EdaProtocol(str, Enum):
    CR_MSG = "CR_MSG"
    CR_REQ_PT = "CR_REQ_PT"
    EC_PODLIST = "EC_PODLIST"
    EC_REQ_ONL = "EC_REQ_ONL"
    EC_PRTFACT_CHANGE = "EC_PRTFACT_CHANGE"
    CM_REV_IMP = "CM_REV_IMP"
    CM_REV_CUS = "CM_REV_CUS"
    CM_REV_SP = "CM_REV_SP"
    ERROR = "ERROR"


def _text(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _message_code(value: str) -> EbMsMessageType | str:
    try:
        return EbMsMessageType(value)
    except ValueError:
        return value


def _direction(value: str) -> DirectionType | str:
    try:
        return DirectionType(value)
    except ValueError:
        return value


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _check_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    return 0 if value is None else _check_int(key, value)


def _float(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)


def _object(value: Any, key: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be an object, got {value!r}")
    return value


def _list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be an array, got {value!r}")
    return value


def _compact(wire: dict[str, Any], omit: set[str]) -> dict[str, Any]:
    return {k: v for k, v in wire.items() if k not in omit or v}


@dataclass
class Timeline:
    """Time window in epoch milliseconds."""

    start: int = 0
    end: int = 0


@dataclass
class EnergyValue:
    start: int = 0
    end: int = 0
    method: str = ""
    value: float = 0.0


@dataclass
class EnergyData:
    meter_code: str = ""
    value: list[EnergyValue] = field(default_factory=list)


@dataclass
class Energy:
    start: int = 0
    end: int = 0
    interval: str = ""
    n_interval: int = 0
    data: list[EnergyData] = field(default_factory=list)


@dataclass
class Meter:
    """A metering point as carried inside a market message."""

    metering_point: str = ""
    direction: DirectionType | str = ""
    activation: int = 0
    part_fact: int = 0
    start: int = 0
    end: int = 0
    plant_category: str = ""
    share: float = 0.0
    consent_id: str = ""


@dataclass
class ResponseData:
    metering_point: str = ""
    response_code: list[int] = field(default_factory=list)
    consent_end: int = 0
    consent_id: str = ""


def _timeline_from(data: dict[str, Any]) -> Timeline:
    return Timeline(start=_int(data, "from"), end=_int(data, "to"))


def _timeline_to(timeline: Timeline) -> dict[str, Any]:
    return {"from": timeline.start, "to": timeline.end}


def _energy_value_from(data: dict[str, Any]) -> EnergyValue:
    return EnergyValue(
        start=_int(data, "from"),
        end=_int(data, "to"),
        method=_str(data, "method"),
        value=_float(data, "value"),
    )


def _energy_value_to(value: EnergyValue) -> dict[str, Any]:
    wire = {"from": value.start, "to": value.end, "method": value.method, "value": value.value}
    return _compact(wire, {"to", "method"})


def _energy_from(data: dict[str, Any]) -> Energy:
    blocks = []
    for item in _list(data, "data"):
        entry = _object(item, "data")
        blocks.append(
            EnergyData(
                meter_code=_str(entry, "meterCode"),
                value=[_energy_value_from(_object(v, "value")) for v in _list(entry, "value")],
            )
        )
    return Energy(
        start=_int(data, "start"),
        end=_int(data, "end"),
        interval=_str(data, "interval"),
        n_interval=_int(data, "NInterval"),
        data=blocks,
    )


def _energy_to(energy: Energy) -> dict[str, Any]:
    return {
        "start": energy.start,
        "end": energy.end,
        "interval": energy.interval,
        "NInterval": energy.n_interval,
        "data": [
            {"meterCode": block.meter_code, "value": [_energy_value_to(v) for v in block.value]}
            for block in energy.data
        ],
    }


def _meter_from(data: dict[str, Any]) -> Meter:
    return Meter(
        metering_point=_str(data, "meteringPoint"),
        direction=_direction(_str(data, "direction")),
        activation=_int(data, "activation"),
        part_fact=_int(data, "partFact"),
        start=_int(data, "from"),
        end=_int(data, "to"),
        plant_category=_str(data, "plantCategory"),
        share=_float(data, "share"),
        consent_id=_str(data, "consentId"),
    )


def _meter_to(meter: Meter) -> dict[str, Any]:
    wire = {
        "meteringPoint": meter.metering_point,
        "direction": _text(meter.direction),
        "activation": meter.activation,
        "partFact": meter.part_fact,
        "from": meter.start,
        "to": meter.end,
        "plantCategory": meter.plant_category,
        "share": meter.share,
        "consentId": meter.consent_id,
    }
    return _compact(wire, set(wire) - {"meteringPoint"})


def _response_from(data: dict[str, Any]) -> ResponseData:
    return ResponseData(
        metering_point=_str(data, "meteringPoint"),
        response_code=[_check_int("responseCode", c) for c in _list(data, "responseCode")],
        consent_end=_int(data, "consentEnd"),
        consent_id=_str(data, "consentId"),
    )


def _response_to(response: ResponseData) -> dict[str, Any]:
    wire = {
        "meteringPoint": response.metering_point,
        "responseCode": list(response.response_code),
        "consentEnd": response.consent_end,
        "consentId": response.consent_id,
    }
    return _compact(wire, {"meteringPoint", "consentEnd", "consentId"})


def _energy_list(raw: Any) -> list[Energy]:
    """Accept both a list of energy blocks and a single legacy block."""
    if raw is None:
        return []
    if isinstance(raw, list):
        return [_energy_from(_object(item, "energy")) for item in raw]
    return [_energy_from(_object(raw, "energy"))]


@dataclass
class EbmsMessage:
    """Envelope of one EBMS market message."""

    conversation_id: str = ""
    message_id: str = ""
    sender: str = ""
    receiver: str = ""
    message_code: EbMsMessageType | str = ""
    message_code_version: str = ""
    request_id: str = ""
    meter: Meter | None = None
    ec_id: str = ""
    ec_type: str = ""
    ec_dis_model: str = ""
    response_data: list[ResponseData] = field(default_factory=list)
    energy: list[Energy] = field(default_factory=list)
    timeline: Timeline | None = None
    meter_list: list[Meter] = field(default_factory=list)
    error_message: str = ""
    consent_end: int = 0
    reason: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EbmsMessage:
        """Build a message from its decoded JSON object."""
        data = _object(data, "message")
        meter = data.get("meter")
        timeline = data.get("timeline")
        return cls(
            conversation_id=_str(data, "conversationId"),
            message_id=_str(data, "messageId"),
            sender=_str(data, "sender"),
            receiver=_str(data, "receiver"),
            message_code=_message_code(_str(data, "messageCode")),
            message_code_version=_str(data, "messageCodeVersion"),
            request_id=_str(data, "requestId"),
            meter=None if meter is None else _meter_from(_object(meter, "meter")),
            ec_id=_str(data, "ecId"),
            ec_type=_str(data, "ecType"),
            ec_dis_model=_str(data, "ecDisModel"),
            response_data=[
                _response_from(_object(r, "responseData")) for r in _list(data, "responseData")
            ],
            energy=_energy_list(data.get("energy")),
            timeline=None if timeline is None else _timeline_from(_object(timeline, "timeline")),
            meter_list=[_meter_from(_object(m, "meterList")) for m in _list(data, "meterList")],
            error_message=_str(data, "errorMessage"),
            consent_end=_int(data, "consentEnd"),
            reason=_str(data, "reason"),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> EbmsMessage:
        """Decode a message from JSON text."""
        return cls.from_dict(json.loads(text))

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON wire form of the message."""
        wire = {
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "sender": self.sender,
            "receiver": self.receiver,
            "messageCode": _text(self.message_code),
            "messageCodeVersion": self.message_code_version,
            "requestId": self.request_id,
            "meter": None if self.meter is None else _meter_to(self.meter),
            "ecId": self.ec_id,
            "ecType": self.ec_type,
            "ecDisModel": self.ec_dis_model,
            "responseData": [_response_to(r) for r in self.response_data],
            "energy": [_energy_to(e) for e in self.energy],
            "timeline": None if self.timeline is None else _timeline_to(self.timeline),
            "meterList": [_meter_to(m) for m in self.meter_list],
            "errorMessage": self.error_message,
            "consentEnd": self.consent_end,
            "reason": self.reason,
        }
        return _compact(wire, set(wire) - {"conversationId", "sender", "receiver", "messageCode"})

    def to_json(self) -> str:
        """Encode the message as compact JSON text."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    def meters(self) -> list[str]:
        """Metering points the message addresses directly."""
        return [self.meter.metering_point] if self.meter is not None else []


@dataclass
class SubscribeMessage:
    """An inbound message together with its tenant and protocol."""

    message_code: EbMsMessageType | str
    protocol: EdaProtocol | str
    tenant: str
    payload: EbmsMessage


@dataclass
class Subscription:
    """Handler registered for one protocol."""

    protocol: EdaProtocol | str
    handler: Callable[[SubscribeMessage], None]