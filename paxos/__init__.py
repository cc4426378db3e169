"""
Multi-instance Paxos for a fixed group of peers.

Any peer may propose a value for any sequence number; all peers that
decide an instance decide the same value, despite lost, duplicated or
reordered messages and network partitions. Instances are independent and
the log is sparse; memory is reclaimed once every peer has called done().

Key pieces:
- Paxos: the peer (start, status, done, min, max, kill)
- LocalNetwork: in-process transport for running a group in one event loop
- HttpTransport / paxos.api: the same peer over HTTP
"""
from paxos.config import PaxosConfig, load_config
from paxos.errors import InvariantViolation, MessageDropped, PaxosError, PeerKilledError
from paxos.peer import Paxos
from paxos.transport import HttpTransport, LocalNetwork, LocalTransport, Transport

__version__ = "1.0.0"

__all__ = [
    "Paxos",
    "PaxosConfig",
    "load_config",
    "Transport",
    "LocalNetwork",
    "LocalTransport",
    "HttpTransport",
    "PaxosError",
    "PeerKilledError",
    "MessageDropped",
    "InvariantViolation",
]
