"""Builders for outbound EBMS messages and their hand-off to a transport."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from eegbackend.ebms import EbmsMessage, EbMsMessageType, Meter, Timeline
from eegbackend.eeg import Eeg
from eegbackend.participant import ChangePartitionFactorRequest, MeteringPoint

log = logging.getLogger(__name__)

Dispatch = Callable[[EbmsMessage], None]
VersionLookup = Callable[[EbMsMessageType], str]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)
_VERSIONS_KEY = "eda-process-versions"


def _code_text(code: Any) -> str:
    return code.value if isinstance(code, Enum) else str(code)


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return (moment - _EPOCH) // _MILLISECOND


def _no_versions(_code: EbMsMessageType) -> str:
    return ""


def versions_from_config(config: Mapping[str, Any]) -> VersionLookup:
    """Return a lookup of schema versions from the ``eda-process-versions`` section.

    Codes without a configured version map to the empty string, which lets
    the receiver fall back to its own default.
    """
    section = config.get(_VERSIONS_KEY) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"{_VERSIONS_KEY} must be a mapping, got {section!r}")
    versions = {str(code): str(version) for code, version in section.items()}

    def lookup(code: EbMsMessageType) -> str:
        return versions.get(_code_text(code), "")

    return lookup


class EbmsProcessor:
    """Builds the envelopes of the common outbound EBMS flows and dispatches them.

    ``dispatch`` receives each finished message and raises on failure;
    ``version_for`` yields the configured schema version of a message code.
    """

    def __init__(self, dispatch: Dispatch, version_for: VersionLookup | None = None) -> None:
        self._dispatch = dispatch
        self._version_for = version_for or _no_versions

    def new_message(
        self, eeg: Eeg, meter: MeteringPoint | None, code: EbMsMessageType
    ) -> EbmsMessage:
        """A fresh message from the community to its grid operator with new ids."""
        message = EbmsMessage(
            conversation_id=str(uuid.uuid4()),
            request_id=str(uuid.uuid4()),
            sender=eeg.rc_number.upper(),
            receiver=self._receiver_for(eeg, meter),
            message_code=code,
            message_code_version=self._version_for(code),
            ec_id=eeg.community_id,
        )
        if meter is not None:
            message.meter = Meter(metering_point=meter.metering_point, direction=meter.direction)
        return message

    @staticmethod
    def _receiver_for(eeg: Eeg, _meter: MeteringPoint | None) -> str:
        return eeg.grid_operator.upper()

    def _send(self, message: EbmsMessage) -> None:
        try:
            self._dispatch(message)
        except Exception:
            log.exception("EBMS dispatch failed (code %s)", _code_text(message.message_code))
            raise

    def _send_registration(
        self,
        eeg: Eeg,
        meter: MeteringPoint,
        start: int | None,
        code: EbMsMessageType,
    ) -> None:
        message = self.new_message(eeg, meter, code)
        if start is not None:
            message.timeline = Timeline(start=start)
        self._send(message)

    def registration_for_participation(
        self, eeg: Eeg, meter: MeteringPoint, start: int | None = None
    ) -> None:
        """Request online registration of a metering point, optionally from ``start``."""
        self._send_registration(eeg, meter, start, EbMsMessageType.EBMS_ONLINE_REG_INIT)

    def offline_registration_for_participation(
        self, eeg: Eeg, meter: MeteringPoint, start: int | None = None
    ) -> None:
        """Request offline registration of a metering point, optionally from ``start``."""
        self._send_registration(eeg, meter, start, EbMsMessageType.EBMS_OFFLINE_REG_INIT)

    def requesting_energy_data(
        self, eeg: Eeg, meter: MeteringPoint, from_date: int, to_date: int
    ) -> None:
        """Ask for the energy data of a metering point in an epoch-millisecond window."""
        message = self.new_message(eeg, meter, EbMsMessageType.EBMS_ZP_SYNC)
        message.timeline = Timeline(start=from_date, end=to_date)
        self._send(message)

    def revoke_metering_point(
        self,
        eeg: Eeg,
        meter: MeteringPoint,
        consent_end: int,
        reason: str | None = None,
    ) -> None:
        """Revoke the participation of a metering point; the reason travels as error text."""
        message = self.new_message(eeg, meter, EbMsMessageType.EBMS_AUFHEBUNG_CCMS)
        message.timeline = Timeline(end=consent_end)
        if reason is not None:
            message.error_message = reason
        self._send(message)

    def requesting_metering_point_list(
        self, eeg: Eeg, receiver: str, start: int, end: int
    ) -> None:
        """Ask a receiver, by default the grid operator, for its metering point list."""
        message = self.new_message(eeg, None, EbMsMessageType.EBMS_ZP_LIST)
        if receiver:
            message.receiver = receiver.upper()
        message.timeline = Timeline(start=start, end=end)
        self._send(message)

    def requesting_metering_point_list_for_community(
        self, eeg: Eeg, start: int, end: int
    ) -> None:
        """Ask for the metering point list addressed by the community id."""
        message = self.new_message(eeg, None, EbMsMessageType.EBMS_ZP_LIST)
        message.meter = Meter(metering_point=eeg.community_id)
        message.timeline = Timeline(start=start, end=end)
        self._send(message)

    def change_partition_factor(
        self, eeg: Eeg, requests: Iterable[ChangePartitionFactorRequest] | None
    ) -> None:
        """Send one partition-factor change per target grid operator.

        Every group is attempted; the first failure is raised afterwards.
        """
        default_operator = eeg.grid_operator.upper()
        groups: dict[str, list[Meter]] = {}
        for request in requests or ():
            operator = default_operator
            if request.grid_operator_id:
                operator = request.grid_operator_id.upper()
            groups.setdefault(operator, []).append(
                Meter(
                    metering_point=request.metering_point,
                    direction=request.direction,
                    activation=_unix_millis(request.activation),
                    part_fact=request.part_fact,
                )
            )

        first_error: Exception | None = None
        for operator, meters in groups.items():
            message = self.new_message(eeg, None, EbMsMessageType.EBMS_REQ_CHANGE_PARTFACT)
            message.receiver = operator
            message.meter_list = meters
            try:
                self._send(message)
            except Exception as exc:
                log.error(
                    "change of partition factor failed for operator %s (%d meters): %s",
                    operator,
                    len(meters),
                    exc,
                )
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error