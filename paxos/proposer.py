"""
File: paxos/proposer.py
Proposer side of the Paxos protocol.

One Proposer drives one start(seq, value) call:

    while not decided:
        choose n, unique and higher than any n seen so far
        send prepare(n) to all peers including self
        if prepare OK from a majority:
            v' = v_a with the highest n_a; own value otherwise
            send accept(n, v') to all
            if accept OK from a majority:
                send decided(v') to all

Missing replies count as rejections. The loop only ends when the instance
is decided, forgotten, or the peer is killed.
"""
import asyncio
import random
import time
from typing import TYPE_CHECKING, Any, List, Tuple

import structlog

from common.metrics import proposer_metrics
from paxos.instance import NO_PROPOSAL
from paxos.messages import (
    AcceptRequest, DecidedRequest, PrepareRequest, ReplyStatus
)

if TYPE_CHECKING:
    from paxos.peer import Paxos

log = structlog.get_logger()


class Proposer:
    """
    Retrying two-phase proposer for a single instance.

    Attributes:
        node: The local peer, used for calls, counters and local state
        seq: Sequence number being agreed on
        value: Value this proposer would like decided
        obsolete: Set when a peer reports the instance as forgotten
    """

    def __init__(self, node: "Paxos", seq: int, value: Any):
        self.node = node
        self.seq = seq
        self.value = value
        self.obsolete = False
        self.rounds = 0

    def _finished(self) -> bool:
        instances = self.node.instances
        return self.obsolete or self.seq < instances.floor or instances.is_decided(self.seq)

    async def run(self) -> None:
        node = self.node
        config = node.config

        while not node.dead:
            if self._finished():
                log.debug("Proposer stopping", node_id=node.me, seq=self.seq,
                          rounds=self.rounds, obsolete=self.obsolete)
                return

            # Never reuse a number below what the local acceptor already promised
            local = node.instances.get(self.seq)
            if local is not None:
                node.counter.observe(local.n_p)

            n = node.counter.next()
            self.rounds += 1
            proposer_metrics["rounds"].labels(node_id=node.me).inc()

            prepared, value = await self.prepare(n)
            if prepared and not self.obsolete:
                if await self.accept(n, value):
                    await self.decide(value)
                    proposer_metrics["decided"].labels(node_id=node.me).inc()
                    log.info("Proposal decided", node_id=node.me, seq=self.seq,
                             n=n, rounds=self.rounds, own_value=value is self.value)
                    return

            if self.obsolete:
                continue

            await asyncio.sleep(random.uniform(config.retry_backoff_min, config.retry_backoff_max))

    async def prepare(self, n: int) -> Tuple[bool, Any]:
        """
        Run the prepare phase with proposal number ``n``.

        Returns:
            Tuple[bool, Any]: (majority promised, value to propose)
                - the value of the highest-numbered accepted proposal among
                  the promises, or this proposer's own value if none
        """
        node = self.node
        start_time = time.time()

        request = PrepareRequest(seq=self.seq, n=n, sender=node.me, done=node.local_done())
        replies = await node.broadcast(request)

        promises = 0
        highest_n_a = NO_PROPOSAL
        value = self.value

        for reply in replies:
            if reply is None:
                continue
            if reply.status == ReplyStatus.OK:
                promises += 1
                if reply.n_a > highest_n_a:
                    highest_n_a = reply.n_a
                    value = reply.v_a
            elif reply.status == ReplyStatus.REJECT:
                node.counter.observe(reply.n_p)
            else:
                self.obsolete = True

        proposer_metrics["prepare_phase_duration"].labels(node_id=node.me).observe(time.time() - start_time)

        success = promises >= node.majority
        log.debug("Prepare phase finished", node_id=node.me, seq=self.seq, n=n,
                  promises=promises, success=success, highest_n_a=highest_n_a)
        return success, value

    async def accept(self, n: int, value: Any) -> bool:
        """
        Run the accept phase for proposal ``(n, value)``.

        Returns:
            bool: True if a majority accepted
        """
        node = self.node
        start_time = time.time()

        request = AcceptRequest(seq=self.seq, n=n, value=value, sender=node.me, done=node.local_done())
        replies = await node.broadcast(request)

        accepted = 0
        for reply in replies:
            if reply is None:
                continue
            if reply.status == ReplyStatus.OK and reply.n == n:
                accepted += 1
            elif reply.status == ReplyStatus.REJECT:
                node.counter.observe(reply.n_p)
            elif reply.status == ReplyStatus.OBSOLETE:
                self.obsolete = True

        proposer_metrics["accept_phase_duration"].labels(node_id=node.me).observe(time.time() - start_time)

        success = accepted >= node.majority
        log.debug("Accept phase finished", node_id=node.me, seq=self.seq, n=n,
                  accepted=accepted, success=success)
        return success

    async def decide(self, value: Any) -> None:
        """
        Tell every peer about the decision.

        Peers that do not acknowledge are retried a few times; after that
        they will learn the value from the next proposer for this seq.
        """
        node = self.node
        pending: List[int] = list(range(node.npeers))

        for attempt in range(1 + node.config.decided_retries):
            request = DecidedRequest(seq=self.seq, value=value, sender=node.me, done=node.local_done())
            replies = await asyncio.gather(*(node.call(peer, request) for peer in pending))
            pending = [peer for peer, reply in zip(pending, replies) if reply is None]

            if not pending or node.dead:
                return

            log.debug("Decided not acknowledged", node_id=node.me, seq=self.seq,
                      peers=pending, attempt=attempt)
            await asyncio.sleep(random.uniform(node.config.retry_backoff_min, node.config.retry_backoff_max))
