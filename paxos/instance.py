"""
File: paxos/instance.py
Per-instance acceptor state and the log that owns it.
"""
import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

# Proposal numbers are (round << PEER_BITS) | peer index
PEER_BITS = 8
MAX_PEERS = 1 << PEER_BITS

# Sentinel for "never promised" / "never accepted"
NO_PROPOSAL = -1


@dataclass
class Instance:
    """Acceptor record for one sequence number."""
    seq: int
    n_p: int = NO_PROPOSAL
    n_a: int = NO_PROPOSAL
    v_a: Any = None
    decided: bool = False
    decided_value: Any = None

    @property
    def has_accepted(self) -> bool:
        return self.n_a != NO_PROPOSAL


class InstanceLog:
    """
    Sparse, in-memory log of Paxos instances keyed by sequence number.

    Instances are created lazily and only at or above the forgotten floor;
    once ``forget_below`` moves the floor, nothing below it is ever recreated.
    Callers never get a reference that outlives the lock: ``mutate`` yields
    the live record inside the critical section, every other accessor
    returns copies.
    """

    def __init__(self):
        self._instances: Dict[int, Instance] = {}
        self._floor = 0
        self.lock = threading.RLock()

    @property
    def floor(self) -> int:
        """Lowest sequence number the log still accepts."""
        with self.lock:
            return self._floor

    @contextmanager
    def mutate(self, seq: int, create: bool = True) -> Iterator[Optional[Instance]]:
        """
        Lock the log and yield the instance for ``seq``.

        Yields None when ``seq`` is below the floor, or when the instance
        does not exist and ``create`` is False.
        """
        with self.lock:
            instance = None
            if seq >= self._floor:
                instance = self._instances.get(seq)
                if instance is None and create:
                    instance = Instance(seq)
                    self._instances[seq] = instance
            yield instance

    def touch(self, seq: int) -> bool:
        """Create the instance if needed; False if ``seq`` is already forgotten."""
        with self.mutate(seq) as instance:
            return instance is not None

    def get(self, seq: int) -> Optional[Instance]:
        """Return a copy of the instance, or None if unknown or forgotten."""
        with self.lock:
            instance = self._instances.get(seq)
            return copy.deepcopy(instance) if instance is not None else None

    def status(self, seq: int) -> Tuple[bool, Any]:
        with self.lock:
            instance = self._instances.get(seq)
            if instance is None or not instance.decided:
                return False, None
            return True, instance.decided_value

    def is_decided(self, seq: int) -> bool:
        return self.status(seq)[0]

    def forget_below(self, floor: int) -> int:
        """
        Drop every instance with ``seq < floor`` and raise the floor.

        The floor never moves backwards.

        Returns:
            int: Number of instances removed
        """
        with self.lock:
            if floor <= self._floor:
                return 0
            self._floor = floor
            stale = [seq for seq in self._instances if seq < floor]
            for seq in stale:
                del self._instances[seq]
            return len(stale)

    def seqs(self) -> List[int]:
        with self.lock:
            return sorted(self._instances)

    def __len__(self) -> int:
        with self.lock:
            return len(self._instances)

    def __contains__(self, seq: int) -> bool:
        with self.lock:
            return seq in self._instances


class ProposalCounter:
    """
    Generator of proposal numbers for one peer.

    Numbers are ``(round << PEER_BITS) | me``: unique across peers and
    strictly increasing for this peer. ``observe`` fast-forwards the round
    so the next number is above anything seen in a reply.
    """

    def __init__(self, me: int, initial_round: int = 0):
        if not 0 <= me < MAX_PEERS:
            raise ValueError(f"peer index {me} does not fit in {PEER_BITS} bits")
        self.me = me
        self.round = initial_round
        self.lock = threading.Lock()

    def next(self) -> int:
        with self.lock:
            self.round += 1
            return (self.round << PEER_BITS) | self.me

    def observe(self, n: int) -> None:
        if n < 0:
            return
        with self.lock:
            self.round = max(self.round, n >> PEER_BITS)
