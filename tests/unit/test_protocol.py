"""Unit tests for wire messages and frames."""
import pytest

from simple_signal.signaling import protocol


def test_session_ids_are_unique():
    ids = {protocol.new_session_id() for _ in range(1000)}

    assert len(ids) == 1000
    assert all(len(session_id) == 32 for session_id in ids)


@pytest.mark.parametrize("signal,expected", [
    ({"type": "offer", "sdp": "v=0"}, True),
    ({"type": "answer", "sdp": ""}, False),
    ({"candidate": {"candidate": "candidate:1"}}, False),
    ("v=0", False),
    (None, False),
])
def test_has_sdp(signal, expected):
    assert protocol.has_sdp(signal) is expected


def test_messages_use_camel_case_on_the_wire():
    message = protocol.OfferMessage(initiator="a", session_id="s1", signal={"sdp": "v=0"}, metadata={"k": 1})

    assert message.to_wire() == {
        "initiator": "a",
        "sessionId": "s1",
        "signal": {"sdp": "v=0"},
        "metadata": {"k": 1},
    }


def test_messages_parse_wire_names():
    request = protocol.OfferRequestMessage.model_validate({
        "sessionId": "s1",
        "signal": {"sdp": "v=0"},
        "target": "b",
        "metadata": None,
        "extra": "ignored",
    })

    assert request.session_id == "s1"
    assert request.target == "b"
    assert request.metadata is None


def test_discover_reply_alias():
    reply = protocol.DiscoverReply.model_validate({"id": "abc", "discoveryData": [1, 2]})

    assert reply.discovery_data == [1, 2]
    assert reply.to_wire() == {"id": "abc", "discoveryData": [1, 2]}


def test_signal_without_metadata():
    message = protocol.SignalMessage.model_validate({"sessionId": "s", "signal": {}})

    assert message.metadata is None


def test_frame_roundtrip():
    frame = protocol.Frame(event=protocol.SIGNAL, data={"sessionId": "s"})

    decoded = protocol.Frame.decode(frame.encode().encode("utf-8"))

    assert decoded == frame


@pytest.mark.parametrize("raw", ["not json", '{"data": 1}', "[1, 2]"])
def test_frame_rejects_bad_input(raw):
    with pytest.raises(ValueError):
        protocol.Frame.decode(raw)
