"""
Wire messages exchanged between Paxos peers.

Requests form a closed tagged union on ``type`` (PREPARE, ACCEPT, DECIDED)
so they can share a single endpoint. Every request and every reply carries
the sender's index and its current done watermark for the forgetting
protocol.
"""
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from paxos.instance import NO_PROPOSAL

NO_DONE = -1


class MessageType(str, Enum):
    """Paxos request types."""
    PREPARE = "PREPARE"
    ACCEPT = "ACCEPT"
    DECIDED = "DECIDED"


class ReplyStatus(str, Enum):
    """Outcome of a prepare or accept request."""
    OK = "OK"
    REJECT = "REJECT"
    OBSOLETE = "OBSOLETE"  # instance already forgotten by the acceptor


class PrepareRequest(BaseModel):
    type: Literal["PREPARE"] = "PREPARE"
    seq: int
    n: int
    sender: int
    done: int = NO_DONE


class AcceptRequest(BaseModel):
    type: Literal["ACCEPT"] = "ACCEPT"
    seq: int
    n: int
    value: Any = None
    sender: int
    done: int = NO_DONE


class DecidedRequest(BaseModel):
    type: Literal["DECIDED"] = "DECIDED"
    seq: int
    value: Any = None
    sender: int
    done: int = NO_DONE


class PrepareReply(BaseModel):
    """OK carries (n_a, v_a); REJECT carries the acceptor's n_p."""
    type: Literal["PREPARE"] = "PREPARE"
    status: ReplyStatus
    n_p: int = NO_PROPOSAL
    n_a: int = NO_PROPOSAL
    v_a: Any = None
    sender: int
    done: int = NO_DONE


class AcceptReply(BaseModel):
    """OK carries the accepted n; REJECT carries the acceptor's n_p."""
    type: Literal["ACCEPT"] = "ACCEPT"
    status: ReplyStatus
    n: int = NO_PROPOSAL
    n_p: int = NO_PROPOSAL
    sender: int
    done: int = NO_DONE


class DecidedReply(BaseModel):
    """Acknowledgement of a decided request."""
    type: Literal["DECIDED"] = "DECIDED"
    sender: int
    done: int = NO_DONE


PaxosRequest = Annotated[
    Union[PrepareRequest, AcceptRequest, DecidedRequest],
    Field(discriminator="type"),
]

PaxosReply = Annotated[
    Union[PrepareReply, AcceptReply, DecidedReply],
    Field(discriminator="type"),
]

request_adapter = TypeAdapter(PaxosRequest)
reply_adapter = TypeAdapter(PaxosReply)


def parse_request(data: dict):
    """Validate a decoded JSON body into the matching request model."""
    return request_adapter.validate_python(data)


def parse_reply(data: dict):
    """Validate a decoded JSON body into the matching reply model."""
    return reply_adapter.validate_python(data)
