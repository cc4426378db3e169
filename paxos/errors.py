"""
Exceptions raised by the Paxos peer.
"""


class PaxosError(Exception):
    """Base class for errors raised by this package."""


class PeerKilledError(PaxosError):
    """The peer has been killed; every further call fails fast."""

    def __init__(self, me: int):
        super().__init__(f"paxos peer {me} has been killed")
        self.me = me


class MessageDropped(PaxosError):
    """Fault injection discarded a request or its reply."""


class InvariantViolation(PaxosError):
    """
    Two different values were decided for the same sequence number.

    Never happens in a correct run; it signals a bug in the protocol code.
    """

    def __init__(self, seq: int, decided_value, new_value):
        super().__init__(
            f"instance {seq} already decided {decided_value!r}, got {new_value!r}"
        )
        self.seq = seq
        self.decided_value = decided_value
        self.new_value = new_value
