# eegbackend

Building blocks for the backend of a renewable energy community (EEG):
data models, EBMS market messages, an MQTT message broker and mail
templates.

Python 3.10 or later is required. The package depends on `paho-mqtt`
and `jinja2`.

## Modules

- `eegbackend.eeg` – the community (`Eeg`) with its address, account
  and contact records, tariffs (`Tariff`), process history
  (`EdaProcessHistory`), notifications and mail-template settings
  (`ActivationMailTemplate`, `InlinePicture`). `Eeg.to_dict()` and
  `Tariff.to_dict()` return the JSON wire form.
- `eegbackend.participant` – participants (`EegParticipant`), metering
  points (`MeteringPoint`, `MeterState`), the `DirectionType` and
  `StatusType` enums, and `ChangePartitionFactorRequest.from_dict()`,
  which parses one entry of a partition-factor change request (the
  `activation` field as an RFC 3339 timestamp).
- `eegbackend.ebms` – `EbmsMessage` and its parts (`Meter`, `Timeline`,
  `Energy`, `ResponseData`), the message-code and protocol enums, and
  `SubscribeMessage` / `Subscription` for inbound handling.
- `eegbackend.processor` – `EbmsProcessor`, which builds outbound
  messages and hands them to a dispatch callable.
- `eegbackend.broker` – `MqttStreamer` and `MessageBroker`, the MQTT
  transport.
- `eegbackend.subscriptions` – the default error-message subscription.
- `eegbackend.mailtemplates` – template rendering and inline-picture
  attachments.
- `eegbackend.mathext`, `eegbackend.timeutil`, `eegbackend.generator`,
  `eegbackend.converter` – small utilities.

## EBMS messages

`EbmsMessage.from_json()` / `from_dict()` decode a message and
`to_json()` / `to_dict()` encode it, leaving out empty optional fields.
The `energy` field is accepted both as a list and as a single object; a
single object becomes a one-element list. Malformed fields raise
`ValueError`. `meters()` returns the metering point the message
addresses, if any.

## Building outbound messages

`EbmsProcessor(dispatch, version_for=None)` takes a `dispatch` callable
that receives each finished message (and raises on failure) and an
optional `version_for` callable that maps a message code to a schema
version. `versions_from_config(config)` builds such a lookup from the
`eda-process-versions` section of a configuration mapping; codes without
an entry map to the empty string.

Every message gets a new conversation id and request id; the sender is
the community's `rc_number` and the receiver its `grid_operator`, both
upper-cased, and `ec_id` is the community id.

```python
from eegbackend.eeg import Eeg
from eegbackend.participant import DirectionType, MeteringPoint
from eegbackend.processor import EbmsProcessor, versions_from_config

eeg = Eeg(id="TE100200", rc_number="te100200",
          community_id="AT00999900000TC100200000000000002",
          grid_operator="nb-op-001")
meter = MeteringPoint(metering_point="AT001000000000000000000000123456",
                      direction=DirectionType.CONSUMPTION)

sent = []
processor = EbmsProcessor(
    sent.append,
    versions_from_config({"eda-process-versions": {"ANFORDERUNG_ECON": "02.30"}}),
)
processor.requesting_energy_data(eeg, meter, 1700000000000, 1700086400000)

message = sent[0]
print(message.sender, message.receiver, message.message_code.value)
# TE100200 NB-OP-001 ANFORDERUNG_PT
```

The available requests are:

- `registration_for_participation(eeg, meter, start=None)` and
  `offline_registration_for_participation(eeg, meter, start=None)`
- `requesting_energy_data(eeg, meter, from_date, to_date)`
- `revoke_metering_point(eeg, meter, consent_end, reason=None)` – the
  reason is sent as the message's error text
- `requesting_metering_point_list(eeg, receiver, start, end)` – an empty
  receiver falls back to the grid operator
- `requesting_metering_point_list_for_community(eeg, start, end)` – the
  community id is sent as the metering point
- `change_partition_factor(eeg, requests)` – groups the requests by grid
  operator (a request's own `grid_operator_id` overrides the
  community's) and sends one message per operator; every group is tried
  and the first failure is raised afterwards

Times are epoch milliseconds.

## The MQTT broker

`MqttStreamer(host, client_id)` connects to the broker at `host` (for
example `tcp://localhost:1883`; `ssl://`, `tls://` and `mqtts://` use
TLS) and reconnects automatically.

`MessageBroker(streamer)` publishes outbound messages on `eda/request`
and subscribes to `eda/response/+/protocol/#`. The tenant and protocol
are taken from the topic (`topic_type_info`), the payload is decoded
into an `EbmsMessage`, and the handler registered for the protocol is
called with a `SubscribeMessage`. Payloads that cannot be decoded are
logged and dropped.

`listen()` blocks, so run it in a thread; `stop()` ends it after the
queued messages are handled. `send_ebms_message()` queues a message for
the listening loop and raises `BrokerNotStartedError` when the loop is
not running; it can be passed to `EbmsProcessor` as `dispatch`.

```python
import threading

from eegbackend.broker import MessageBroker, MqttStreamer
from eegbackend.processor import EbmsProcessor
from eegbackend.subscriptions import init_error_subscriptions

broker = MessageBroker(MqttStreamer("tcp://localhost:1883", "eegbackend"))
init_error_subscriptions(broker)
threading.Thread(target=broker.listen, daemon=True).start()

processor = EbmsProcessor(broker.send_ebms_message)
```

`subscribe(*subscriptions)` and `unsubscribe(*subscriptions)` manage the
handlers; a later handler for a protocol replaces the earlier one.
`init_error_subscriptions(broker)` registers `error_handler`, which logs
messages on the `ERROR` protocol, and raises `BrokerNotStartedError`
when given `None`.

## Mail templates

- `parse_template(template_file, data)` renders a Jinja2 template file
  with HTML auto-escaping; undefined names raise an error.
- `get_template_for(template_type, tenant, templates_root)` returns the
  path, with forward slashes, of the `ACTIVATION` template in
  `<templates_root>/<tenant>/templates`, or in `../public/templates`
  when the tenant directory does not exist. Other template types raise
  `ValueError`.
- `build_attachments(template_path, pictures)` reads each
  `InlinePicture` relative to `template_path` and returns inline
  `Attachment` records; files that cannot be read are logged and left
  out.
- `detect_mime_type(data)` guesses a media type from the leading bytes
  (PNG, JPEG, GIF, WebP, BMP, SVG, PDF, HTML, XML, plain text, otherwise
  `application/octet-stream`).

## Utilities

```python
from eegbackend.mathext import to_fixed

to_fixed(1.236, 2)   # 1.24
to_fixed(1.5, 0)     # 2.0
to_fixed(1.005, 2)   # 1.0 – binary floats, not decimal arithmetic
```

- `truncate_to_start_of_day(moment)` returns midnight of the given day
  and `truncate_to_end_of_day(moment)` 23:45 of that day, the start of
  its last quarter-hour interval; both keep the time zone.
- `new_message_id(ec_number)` returns the number followed by the local
  time to the millisecond and ten random digits.
- `convert_struct_to_map(obj)` turns a dataclass instance into a dict
  keyed by field name, nested records included, and
  `convert_map_to_struct(mapping, cls)` builds an instance back; missing
  keys keep their defaults and unknown keys are ignored.

## What the package does not do

It has no command to start, no HTTP or GraphQL API, and no database
storage of communities, participants or tariffs. It renders mail
templates and collects their attachments but does not send mail, and it
does not read configuration files; configuration values are passed in by
the caller.

## Running the tests

The tests use pytest, which is listed in the `test` extra:

```
pip install -e ".[test]"
pytest
```