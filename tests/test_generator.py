from datetime import datetime
from unittest import mock

from eegbackend.generator import new_message_id


def test_id_layout():
    before = datetime.now().replace(microsecond=0)
    message_id = new_message_id("TE100100")
    after = datetime.now()
    assert message_id.startswith("TE100100")
    body = message_id[len("TE100100"):]
    assert len(body) == 27
    assert body.isdigit()
    stamp = datetime.strptime(body[:14], "%Y%m%d%H%M%S")
    assert before <= stamp <= after
    assert 100 <= int(body[17:]) < 9999999999


def test_id_is_built_from_clock_and_random_number():
    fixed = datetime(2024, 1, 2, 3, 4, 5, 678000)
    with mock.patch("eegbackend.generator.datetime") as clock, mock.patch(
        "random.randrange", return_value=0
    ):
        clock.now.return_value = fixed
        message_id = new_message_id("TE100100")
    assert message_id == "TE100100" + "20240102030405678" + "0000000100"


def test_ids_differ_between_calls():
    ids = {new_message_id("RC1") for _ in range(20)}
    assert len(ids) > 1