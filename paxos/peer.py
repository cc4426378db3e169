"""
File: paxos/peer.py
The Paxos peer: public API and inbound request dispatch.

Application-facing calls:
    px = Paxos(peers, me, transport)
    px.start(seq, value)   -- start agreement on an instance, returns at once
    px.status(seq)         -- (decided, value) from local state
    px.done(seq)           -- this peer no longer needs instances <= seq
    px.max()               -- highest seq passed to start() on this peer
    px.min()               -- instances below this have been forgotten
    await px.kill()        -- shut the peer down

After kill() every call raises PeerKilledError.
"""
import asyncio
import random
import threading
from typing import Any, Dict, List, Optional, Set, Tuple

import structlog

from common.metrics import forgetting_metrics, proposer_metrics, rpc_metrics
from paxos.acceptor import handle_accept, handle_decided, handle_prepare
from paxos.config import PaxosConfig
from paxos.errors import MessageDropped, PeerKilledError
from paxos.forgetting import DoneTracker
from paxos.instance import MAX_PEERS, InstanceLog, ProposalCounter
from paxos.messages import AcceptRequest, DecidedRequest, PrepareRequest
from paxos.proposer import Proposer
from paxos.transport import HttpTransport, Transport

log = structlog.get_logger()


class Paxos:
    """
    One member of a fixed Paxos group.

    Attributes:
        peers: Addresses of every peer, in group order
        me: Index of this peer in ``peers``
        config: Timing and fault-injection settings
        transport: Outbound request delivery
        instances: The local instance log
        tracker: Done watermarks of the group and the derived Min()
        counter: Proposal number generator
        rpc_count: Remote requests handled by this peer
    """

    def __init__(self, peers: List[str], me: int, transport: Optional[Transport] = None,
                 config: Optional[PaxosConfig] = None):
        if not peers:
            raise ValueError("a Paxos group needs at least one peer")
        if len(peers) > MAX_PEERS:
            raise ValueError(f"at most {MAX_PEERS} peers are supported, got {len(peers)}")
        if not 0 <= me < len(peers):
            raise ValueError(f"me={me} is not an index into {len(peers)} peers")

        self.peers = list(peers)
        self.me = me
        self.npeers = len(peers)
        self.majority = self.npeers // 2 + 1
        self.config = config or PaxosConfig()

        self.instances = InstanceLog()
        self.tracker = DoneTracker(self.npeers, me)
        self.counter = ProposalCounter(me)

        self.dead = False
        self.rpc_count = 0
        self._unreliable = self.config.unreliable
        self._max_seq = -1
        self._proposers: Set[asyncio.Task] = set()
        self.lock = threading.Lock()

        self._handlers = {
            PrepareRequest: handle_prepare,
            AcceptRequest: handle_accept,
            DecidedRequest: handle_decided,
        }

        self.transport = transport or HttpTransport(self.peers, timeout=self.config.rpc_timeout)
        self.transport.bind(self)

        forgetting_metrics["global_min"].labels(node_id=me).set(0)
        log.info("Paxos peer created", node_id=me, npeers=self.npeers, unreliable=self._unreliable)

    # Application API

    def start(self, seq: int, value: Any) -> None:
        """
        Start agreement on instance ``seq`` with ``value`` as our proposal.

        Returns immediately; the outcome is observed with status(). Must be
        called from a running event loop. Calls for forgotten or already
        decided instances do nothing.

        Raises:
            PeerKilledError: if the peer has been killed
            ValueError: if ``seq`` is negative
        """
        self._check_alive()
        self._check_seq(seq)

        with self.lock:
            self._max_seq = max(self._max_seq, seq)

        if not self.instances.touch(seq):
            log.debug("Ignoring start for forgotten instance", node_id=self.me, seq=seq)
            return
        forgetting_metrics["instances"].labels(node_id=self.me).set(len(self.instances))

        if self.instances.is_decided(seq):
            return

        proposer = Proposer(self, seq, value)
        task = asyncio.get_running_loop().create_task(proposer.run(), name=f"paxos-{self.me}-seq-{seq}")
        self._proposers.add(task)
        task.add_done_callback(self._proposer_finished)

        proposer_metrics["proposals_started"].labels(node_id=self.me).inc()
        proposer_metrics["active_proposers"].labels(node_id=self.me).set(len(self._proposers))
        log.debug("Proposer started", node_id=self.me, seq=seq)

    def status(self, seq: int) -> Tuple[bool, Any]:
        """
        Report whether this peer knows the decision for ``seq``.

        Returns:
            Tuple[bool, Any]: (decided, value); (False, None) for unknown
            or forgotten instances
        """
        self._check_alive()
        self._check_seq(seq)
        return self.instances.status(seq)

    def done(self, seq: int) -> None:
        """The application will not call status() for any instance <= seq again."""
        self._check_alive()
        self._check_seq(seq)
        new_min = self.tracker.done(seq)
        if new_min is not None:
            self._forget(new_min)

    def max(self) -> int:
        self._check_alive()
        with self.lock:
            return self._max_seq

    def min(self) -> int:
        self._check_alive()
        return self.tracker.min()

    async def kill(self) -> None:
        """
        Shut the peer down. Idempotent.

        Cancels running proposers and waits for them to exit, then closes
        the transport. Inbound requests are refused from now on.
        """
        if self.dead:
            return
        self.dead = True
        log.info("Killing paxos peer", node_id=self.me, active_proposers=len(self._proposers))

        tasks = list(self._proposers)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.transport.close()
        proposer_metrics["active_proposers"].labels(node_id=self.me).set(0)

    # Fault injection

    @property
    def unreliable(self) -> bool:
        return self._unreliable

    def set_unreliable(self, enabled: bool) -> None:
        self._unreliable = enabled
        log.info("Fault injection toggled", node_id=self.me, unreliable=enabled)

    # Inbound requests

    def handle(self, request):
        """
        Serve a request from another peer.

        Raises:
            PeerKilledError: if the peer has been killed
            MessageDropped: if fault injection discarded the request or the reply
            InvariantViolation: if a conflicting decision is received
        """
        self._check_alive()

        if self._unreliable and random.random() < self.config.drop_request_rate:
            rpc_metrics["dropped"].labels(node_id=self.me, direction="request").inc()
            raise MessageDropped("request dropped")

        with self.lock:
            self.rpc_count += 1
        rpc_metrics["inbound"].labels(node_id=self.me, type=request.type).inc()

        reply = self._dispatch(request)

        if self._unreliable and random.random() < self.config.drop_reply_rate:
            rpc_metrics["dropped"].labels(node_id=self.me, direction="reply").inc()
            raise MessageDropped("reply dropped")
        return reply

    def _dispatch(self, request):
        self._observe_done(request.sender, request.done)
        handler = self._handlers[type(request)]
        return handler(self.instances, request, self.me, self.local_done())

    # Outbound requests

    async def call(self, peer: int, request):
        """
        Send ``request`` to ``peer`` and wait, bounded by rpc_timeout.

        Requests to ourselves are served in-process. The piggybacked done
        watermark of any reply is recorded.

        Returns:
            The reply, or None if no reply arrived
        """
        if peer == self.me:
            return self._dispatch(request)

        try:
            reply = await asyncio.wait_for(self.transport.call(peer, request), self.config.rpc_timeout)
        except asyncio.TimeoutError:
            reply = None

        if reply is None:
            rpc_metrics["no_reply"].labels(node_id=self.me).inc()
            return None

        self._observe_done(reply.sender, reply.done)
        return reply

    async def broadcast(self, request) -> List[Any]:
        """Send ``request`` to every peer concurrently; replies in peer order."""
        return await asyncio.gather(*(self.call(peer, request) for peer in range(self.npeers)))

    # Forgetting

    def local_done(self) -> int:
        return self.tracker.local_done

    def _observe_done(self, peer: int, done: int) -> None:
        new_min = self.tracker.observe(peer, done)
        if new_min is not None:
            self._forget(new_min)

    def _forget(self, new_min: int) -> None:
        removed = self.instances.forget_below(new_min)
        forgetting_metrics["global_min"].labels(node_id=self.me).set(new_min)
        forgetting_metrics["instances"].labels(node_id=self.me).set(len(self.instances))
        forgetting_metrics["forgotten"].labels(node_id=self.me).inc(removed)
        log.info("Min advanced", node_id=self.me, min=new_min, forgotten=removed)

    # Helpers

    def _proposer_finished(self, task: asyncio.Task) -> None:
        self._proposers.discard(task)
        proposer_metrics["active_proposers"].labels(node_id=self.me).set(len(self._proposers))
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error("Proposer failed", node_id=self.me, task=task.get_name(), exc_info=error)

    def _check_alive(self) -> None:
        if self.dead:
            raise PeerKilledError(self.me)

    @staticmethod
    def _check_seq(seq: int) -> None:
        if seq < 0:
            raise ValueError(f"sequence numbers are non-negative, got {seq}")

    def get_status(self) -> Dict[str, Any]:
        """
        Snapshot of the peer for monitoring.

        Returns:
            Dict[str, Any]: Peer status
        """
        with self.lock:
            max_seq = self._max_seq
            rpc_count = self.rpc_count
        return {
            "node_id": self.me,
            "npeers": self.npeers,
            "dead": self.dead,
            "min": self.tracker.min(),
            "max": max_seq,
            "done": self.tracker.snapshot(),
            "instances": len(self.instances),
            "active_proposers": len(self._proposers),
            "unreliable": self._unreliable,
            "rpc_count": rpc_count,
        }
