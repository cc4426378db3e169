"""
File: paxos/forgetting.py
Done/min bookkeeping for the forgetting protocol.

Each peer declares, through done(seq), that it will never again need any
instance at or below seq. Those watermarks travel piggybacked on every
request and reply. Once every peer of the group has been heard from, the
global minimum is ``min(done) + 1``: instances below it can be purged on
every peer.
"""
import threading
from typing import Dict, Optional

from paxos.messages import NO_DONE


class DoneTracker:
    """
    Tracks the done watermark of every peer and derives Min().

    Attributes:
        npeers: Size of the group
        me: Index of the local peer
    """

    def __init__(self, npeers: int, me: int):
        self.npeers = npeers
        self.me = me
        # peer index -> highest seq declared done; missing means "never heard"
        self.peer_done: Dict[int, int] = {me: NO_DONE}
        self.global_min = 0
        self.lock = threading.RLock()

    @property
    def local_done(self) -> int:
        with self.lock:
            return self.peer_done[self.me]

    def done(self, seq: int) -> Optional[int]:
        """
        Raise the local watermark to ``seq`` (never lowers it).

        Returns:
            Optional[int]: The new global minimum if it advanced, else None
        """
        return self.observe(self.me, seq)

    def observe(self, peer: int, done: int) -> Optional[int]:
        """
        Record a watermark learned from ``peer``.

        Args:
            peer: Index of the peer that reported the value
            done: The peer's done watermark

        Returns:
            Optional[int]: The new global minimum if it advanced, else None
        """
        if not 0 <= peer < self.npeers:
            return None

        with self.lock:
            if done > self.peer_done.get(peer, NO_DONE - 1):
                self.peer_done[peer] = done
            return self._recompute()

    def _recompute(self) -> Optional[int]:
        if len(self.peer_done) < self.npeers:
            return None
        candidate = min(self.peer_done.values()) + 1
        if candidate <= self.global_min:
            return None
        self.global_min = candidate
        return candidate

    def min(self) -> int:
        with self.lock:
            return self.global_min

    def snapshot(self) -> Dict[int, int]:
        with self.lock:
            return dict(self.peer_done)
