"""
Unit tests for the wire messages.
"""
import pytest
from pydantic import ValidationError

from paxos.messages import (
    AcceptReply, AcceptRequest, DecidedRequest, PrepareReply, PrepareRequest,
    ReplyStatus, parse_reply, parse_request
)


def test_parse_request_dispatches_on_type():
    """The type tag picks the request model."""
    # Arrange
    payloads = [
        {"type": "PREPARE", "seq": 1, "n": 256, "sender": 0, "done": 3},
        {"type": "ACCEPT", "seq": 1, "n": 256, "value": {"k": [1, 2]}, "sender": 0},
        {"type": "DECIDED", "seq": 1, "value": "v", "sender": 2, "done": -1},
    ]

    # Act
    parsed = [parse_request(payload) for payload in payloads]

    # Assert
    assert isinstance(parsed[0], PrepareRequest)
    assert isinstance(parsed[1], AcceptRequest)
    assert isinstance(parsed[2], DecidedRequest)
    assert parsed[0].done == 3
    assert parsed[1].value == {"k": [1, 2]}, "Opaque values must survive parsing"
    assert parsed[1].done == -1, "Missing done defaults to the sentinel"


def test_parse_request_rejects_unknown_type():
    with pytest.raises(ValidationError):
        parse_request({"type": "COMMIT", "seq": 1, "sender": 0})


def test_parse_request_rejects_missing_fields():
    with pytest.raises(ValidationError):
        parse_request({"type": "PREPARE", "seq": 1})


def test_reply_json_roundtrip():
    """A reply dumped to JSON parses back to the same model."""
    reply = PrepareReply(status=ReplyStatus.OK, n_p=512, n_a=256, v_a=[1, "a"], sender=1, done=4)

    parsed = parse_reply(reply.model_dump(mode="json"))

    assert parsed == reply


def test_accept_reply_defaults():
    reply = AcceptReply(status=ReplyStatus.REJECT, n_p=300, sender=2)

    assert reply.n == -1
    assert reply.model_dump(mode="json")["status"] == "REJECT"
