import json
import uuid

import pytest

from checkin_hub.schemas import CheckInMode, CommunicationEvent


def test_event_decodes_snake_and_pascal_case():
    visitor_id = uuid.uuid4()
    snake = CommunicationEvent.decode({"id": str(visitor_id), "name": "Ada", "company": "Acme", "mode": "REMOTE_CHECK_IN"})
    pascal = CommunicationEvent.decode(
        json.dumps({"Id": str(visitor_id), "Name": "Ada", "Company": "Acme", "Mode": "REMOTE_CHECK_IN"})
    )
    assert snake == pascal
    assert snake.id == str(visitor_id)
    assert snake.mode == CheckInMode.REMOTE_CHECK_IN


@pytest.mark.parametrize("raw_id", ["", "  ", None, "00000000-0000-0000-0000-000000000000", "00000000000000000000000000000000"])
def test_empty_and_nil_ids_mean_no_visitor(raw_id):
    event = CommunicationEvent.decode({"id": raw_id, "name": "Ada", "mode": "SELF_CHECK_IN"})
    assert event.id is None
    assert event.encode()["id"] == ""


def test_missing_mode_is_unknown():
    assert CommunicationEvent.decode(b'{"name": "Ada"}').mode == CheckInMode.UNKNOWN


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", 42, {"mode": "TELEPORT"}, {"id": 42}])
def test_malformed_events_raise_value_error(raw):
    with pytest.raises(ValueError):
        CommunicationEvent.decode(raw)


def test_malformed_id_is_left_for_the_handlers():
    event = CommunicationEvent.decode({"id": " abc ", "name": "Ada", "mode": "REMOTE_CHECK_IN"})
    assert event.id == "abc"


def test_uuid_ids_are_carried_as_strings():
    visitor_id = uuid.uuid4()
    event = CommunicationEvent(id=visitor_id, name="Ada", mode=CheckInMode.REMOTE_CHECK_IN)
    assert event.encode()["id"] == str(visitor_id)
