from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from eegbackend.ebms import EbmsMessage, EbMsMessageType, Meter, Timeline
from eegbackend.eeg import Eeg
from eegbackend.participant import ChangePartitionFactorRequest, DirectionType, MeteringPoint
from eegbackend.processor import EbmsProcessor, versions_from_config


class Capture:
    def __init__(self):
        self.messages = []

    def __call__(self, message):
        self.messages.append(message)

    @property
    def msg(self):
        return self.messages[-1] if self.messages else None


def sample_eeg():
    return Eeg(
        id="TE100200",
        rc_number="TE100200",
        community_id="AT00999900000TC100200000000000002",
        grid_operator="NB-OP-001",
    )


def sample_meter():
    return MeteringPoint(
        metering_point="AT001000000000000000000000123456",
        direction=DirectionType.CONSUMPTION,
    )


def strip_volatile(message):
    return replace(message, conversation_id="", request_id="")


def millis(moment):
    return int(moment.timestamp() * 1000)


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def processor(capture):
    return EbmsProcessor(capture)


def test_registration_for_participation_dispatches_message(processor, capture):
    start = 1700000000000
    processor.registration_for_participation(sample_eeg(), sample_meter(), start)
    msg = capture.msg
    assert msg is not None
    assert msg.message_code == EbMsMessageType.EBMS_ONLINE_REG_INIT
    assert msg.timeline == Timeline(start=start)
    assert msg.meter.metering_point == "AT001000000000000000000000123456"
    assert msg.sender == "TE100200"
    assert msg.receiver == "NB-OP-001"
    assert msg.conversation_id and msg.request_id
    assert msg.conversation_id != msg.request_id


def test_offline_registration_uses_offline_code():
    sent = []
    EbmsProcessor(sent.append).offline_registration_for_participation(
        sample_eeg(), sample_meter(), None
    )
    assert len(sent) == 1
    msg = sent[0]
    assert msg.message_code == EbMsMessageType.EBMS_OFFLINE_REG_INIT
    assert msg.timeline is None


def test_requesting_energy_data_carries_timeline(processor, capture):
    processor.requesting_energy_data(sample_eeg(), sample_meter(), 1700000000000, 1700086400000)
    assert capture.msg.message_code == EbMsMessageType.EBMS_ZP_SYNC
    assert capture.msg.timeline == Timeline(start=1700000000000, end=1700086400000)


def test_revoke_metering_point_carries_reason():
    sent = []
    reason = "Mitglied gekündigt"
    EbmsProcessor(sent.append).revoke_metering_point(
        sample_eeg(), sample_meter(), 1700086400000, reason
    )
    assert len(sent) == 1
    msg = sent[0]
    assert msg.message_code == EbMsMessageType.EBMS_AUFHEBUNG_CCMS
    assert msg.error_message == reason
    assert msg.timeline is not None
    assert msg.timeline.end == 1700086400000


def test_revoke_metering_point_nil_reason():
    sent = []
    EbmsProcessor(sent.append).revoke_metering_point(sample_eeg(), sample_meter(), 0, None)
    assert len(sent) == 1
    assert sent[0].error_message == ""
    assert sent[0].message_code == EbMsMessageType.EBMS_AUFHEBUNG_CCMS


def test_requesting_metering_point_list_overrides_receiver(processor, capture):
    processor.requesting_metering_point_list(sample_eeg(), "other-receiver", 100, 200)
    assert capture.msg.message_code == EbMsMessageType.EBMS_ZP_LIST
    assert capture.msg.receiver == "OTHER-RECEIVER"
    assert capture.msg.meter is None
    assert capture.msg.timeline == Timeline(start=100, end=200)


def test_requesting_metering_point_list_falls_back_to_grid_operator():
    sent = []
    EbmsProcessor(sent.append).requesting_metering_point_list(sample_eeg(), "", 100, 200)
    assert len(sent) == 1
    assert sent[0].receiver == "NB-OP-001"
    assert sent[0].timeline == Timeline(start=100, end=200)


def test_dispatch_error_propagates():
    error = RuntimeError("mqtt down")

    def failing(_message):
        raise error

    with pytest.raises(RuntimeError) as info:
        EbmsProcessor(failing).registration_for_participation(sample_eeg(), sample_meter(), None)
    assert info.value is error


def test_change_partition_factor_groups_by_operator():
    sent = []
    requests = [
        ChangePartitionFactorRequest(
            metering_point="M1", direction=DirectionType.CONSUMPTION, part_fact=40
        ),
        ChangePartitionFactorRequest(
            metering_point="M2", direction=DirectionType.GENERATOR, part_fact=30
        ),
        ChangePartitionFactorRequest(
            metering_point="M3",
            direction=DirectionType.CONSUMPTION,
            grid_operator_id="NB-OP-OTHER",
            part_fact=20,
        ),
    ]
    EbmsProcessor(sent.append).change_partition_factor(sample_eeg(), requests)
    assert len(sent) == 2
    by_operator = {m.receiver: m for m in sent}
    assert set(by_operator) == {"NB-OP-001", "NB-OP-OTHER"}

    default_group = by_operator["NB-OP-001"]
    assert [m.metering_point for m in default_group.meter_list] == ["M1", "M2"]
    assert default_group.message_code == EbMsMessageType.EBMS_REQ_CHANGE_PARTFACT

    override_group = by_operator["NB-OP-OTHER"]
    assert len(override_group.meter_list) == 1
    assert override_group.meter_list[0].metering_point == "M3"
    assert override_group.meter_list[0].part_fact == 20


def test_change_partition_factor_empty_requests_no_dispatch():
    sent = []
    proc = EbmsProcessor(sent.append)
    proc.change_partition_factor(sample_eeg(), None)
    proc.change_partition_factor(sample_eeg(), [])
    assert sent == []
    proc.change_partition_factor(sample_eeg(), [ChangePartitionFactorRequest(metering_point="M1")])
    assert len(sent) == 1
    assert sent[0].receiver == "NB-OP-001"


def test_change_partition_factor_activation_in_millis():
    sent = []
    request = ChangePartitionFactorRequest(
        metering_point="M1",
        activation=datetime(2024, 1, 1, tzinfo=timezone.utc),
        part_fact=50,
    )
    EbmsProcessor(sent.append).change_partition_factor(sample_eeg(), [request])
    assert len(sent) == 1
    assert sent[0].meter_list[0].activation == 1704067200000
    assert sent[0].meter_list[0].part_fact == 50


def test_change_partition_factor_lowercase_override_is_uppercased():
    sent = []
    request = ChangePartitionFactorRequest(metering_point="M1", grid_operator_id="nb-op-low")
    EbmsProcessor(sent.append).change_partition_factor(sample_eeg(), [request])
    assert len(sent) == 1
    assert sent[0].receiver == "NB-OP-LOW"


def test_change_partition_factor_attempts_all_groups_and_raises_first():
    attempted = []
    errors = {"NB-OP-001": ValueError("first"), "NB-OP-OTHER": KeyError("second")}

    def failing(message):
        attempted.append(message.receiver)
        raise errors[message.receiver]

    requests = [
        ChangePartitionFactorRequest(metering_point="M1"),
        ChangePartitionFactorRequest(metering_point="M2", grid_operator_id="NB-OP-OTHER"),
    ]
    with pytest.raises(ValueError, match="first"):
        EbmsProcessor(failing).change_partition_factor(sample_eeg(), requests)
    assert attempted == ["NB-OP-001", "NB-OP-OTHER"]


def test_new_message_sets_ec_id(processor):
    msg = processor.new_message(sample_eeg(), sample_meter(), EbMsMessageType.EBMS_ZP_LIST)
    assert msg.ec_id == "AT00999900000TC100200000000000002"


def test_new_message_sets_configured_message_code_version(capture):
    versions = {EbMsMessageType.EBMS_ONLINE_REG_INIT: "02.30"}
    proc = EbmsProcessor(capture, lambda code: versions.get(code, ""))
    msg = proc.new_message(sample_eeg(), sample_meter(), EbMsMessageType.EBMS_ONLINE_REG_INIT)
    assert msg.message_code_version == "02.30"


def test_new_message_leaves_version_empty_when_unconfigured(capture):
    proc = EbmsProcessor(capture, lambda code: {}.get(code, ""))
    msg = proc.new_message(sample_eeg(), sample_meter(), EbMsMessageType.EBMS_ONLINE_REG_INIT)
    assert msg.message_code_version == ""
    assert "messageCodeVersion" not in msg.to_dict()


def test_registration_propagates_configured_version(capture):
    versions = {EbMsMessageType.EBMS_ONLINE_REG_INIT: "02.00"}
    proc = EbmsProcessor(capture, lambda code: versions.get(code, ""))
    proc.registration_for_participation(sample_eeg(), sample_meter(), None)
    assert capture.msg.message_code_version == "02.00"


def test_versions_from_config_lookup():
    lookup = versions_from_config(
        {"eda-process-versions": {"ANFORDERUNG_ECON": "02.30", "ANFORDERUNG_PT": "01.12"}}
    )
    assert lookup(EbMsMessageType.EBMS_ONLINE_REG_INIT) == "02.30"
    assert lookup(EbMsMessageType.EBMS_ZP_SYNC) == "01.12"
    assert lookup(EbMsMessageType.EBMS_ZP_LIST) == ""


def test_versions_from_config_without_section():
    lookup = versions_from_config({})
    assert lookup(EbMsMessageType.EBMS_ONLINE_REG_INIT) == ""


def test_versions_from_config_rejects_non_mapping():
    with pytest.raises(ValueError):
        versions_from_config({"eda-process-versions": "02.30"})


def test_processor_with_config_versions(capture):
    proc = EbmsProcessor(
        capture, versions_from_config({"eda-process-versions": {"ANFORDERUNG_PT": "01.30"}})
    )
    proc.requesting_energy_data(sample_eeg(), sample_meter(), 1, 2)
    assert capture.msg.to_dict()["messageCodeVersion"] == "01.30"


# Equivalence with the envelopes previously built by hand at the call sites.


def test_zp_sync_from_meter_request_matches_inline(processor, capture):
    eeg = sample_eeg()
    assert eeg.id == eeg.rc_number
    start, end = 1700000000000, 1700086400000
    meter = sample_meter()
    processor.requesting_energy_data(eeg, meter, start, end)
    got = strip_volatile(capture.msg)
    want = EbmsMessage(
        sender=eeg.id.upper(),
        receiver=eeg.grid_operator.upper(),
        message_code=EbMsMessageType.EBMS_ZP_SYNC,
        meter=Meter(metering_point=meter.metering_point, direction=meter.direction),
        timeline=Timeline(start=start, end=end),
    )
    assert got.sender == want.sender
    assert got.receiver == want.receiver
    assert got.message_code == want.message_code
    assert got.meter == want.meter
    assert got.timeline == want.timeline


def test_zp_sync_from_body_matches_inline(processor, capture):
    eeg = sample_eeg()
    day = datetime(2026, 5, 30, 14, 0, tzinfo=timezone.utc)
    midnight = day.replace(hour=0)
    start = millis(midnight - timedelta(days=3))
    end = millis(midnight - timedelta(days=2))
    meter = MeteringPoint(metering_point="AT001000000000000000000000654321", direction="")
    processor.requesting_energy_data(eeg, meter, start, end)
    got = strip_volatile(capture.msg)
    want = EbmsMessage(
        sender=eeg.id.upper(),
        receiver=eeg.grid_operator.upper(),
        message_code=EbMsMessageType.EBMS_ZP_SYNC,
        meter=Meter(metering_point=meter.metering_point),
        timeline=Timeline(start=1780099200000, end=1780185600000),
    )
    assert got.sender == want.sender
    assert got.receiver == want.receiver
    assert got.message_code == want.message_code
    assert got.meter == want.meter
    assert got.timeline == want.timeline


def test_zp_list_for_community_matches_inline(processor, capture):
    eeg = sample_eeg()
    day = datetime(2026, 5, 30, 14, 0, tzinfo=timezone.utc)
    midnight = day.replace(hour=0)
    start = millis(midnight - timedelta(days=1))
    end = millis(midnight)
    processor.requesting_metering_point_list_for_community(eeg, start, end)
    got = strip_volatile(capture.msg)
    assert got.sender == "TE100200"
    assert got.receiver == "NB-OP-001"
    assert got.message_code == EbMsMessageType.EBMS_ZP_LIST
    assert got.meter is not None
    assert got.meter.metering_point == eeg.community_id
    assert got.timeline == Timeline(start=start, end=end)
    assert got.to_dict()["meter"] == {"meteringPoint": "AT00999900000TC100200000000000002"}