"""
File: paxos/acceptor.py
Acceptor side of the Paxos protocol.

Each handler runs a single check-and-set against the instance log under
its lock and builds the reply; none of them performs I/O. The caller
stamps ``me`` and its done watermark on the reply.

    prepare(n):   if n > n_p: n_p = n; OK(n_a, v_a)   else REJECT(n_p)
    accept(n, v): if n >= n_p: n_p = n_a = n; v_a = v; OK(n)   else REJECT(n_p)
"""
import structlog

from common.metrics import acceptor_metrics
from paxos.errors import InvariantViolation
from paxos.instance import InstanceLog
from paxos.messages import (
    AcceptReply, AcceptRequest, DecidedReply, DecidedRequest,
    MessageType, PrepareReply, PrepareRequest, ReplyStatus
)

log = structlog.get_logger()


def handle_prepare(instances: InstanceLog, request: PrepareRequest, me: int, done: int) -> PrepareReply:
    acceptor_metrics["prepare_received"].labels(node_id=me).inc()

    with instances.mutate(request.seq) as instance:
        if instance is None:
            reply = PrepareReply(status=ReplyStatus.OBSOLETE, sender=me, done=done)
        elif request.n > instance.n_p:
            instance.n_p = request.n
            reply = PrepareReply(
                status=ReplyStatus.OK,
                n_p=instance.n_p,
                n_a=instance.n_a,
                v_a=instance.v_a,
                sender=me,
                done=done
            )
        else:
            reply = PrepareReply(status=ReplyStatus.REJECT, n_p=instance.n_p, sender=me, done=done)

    acceptor_metrics["replies"].labels(node_id=me, type=MessageType.PREPARE.value, status=reply.status.value).inc()
    log.debug("Handled prepare", node_id=me, seq=request.seq, n=request.n,
              sender=request.sender, status=reply.status.value, n_p=reply.n_p)
    return reply


def handle_accept(instances: InstanceLog, request: AcceptRequest, me: int, done: int) -> AcceptReply:
    acceptor_metrics["accept_received"].labels(node_id=me).inc()

    with instances.mutate(request.seq) as instance:
        if instance is None:
            reply = AcceptReply(status=ReplyStatus.OBSOLETE, sender=me, done=done)
        elif request.n >= instance.n_p:
            instance.n_p = request.n
            instance.n_a = request.n
            instance.v_a = request.value
            reply = AcceptReply(status=ReplyStatus.OK, n=request.n, n_p=instance.n_p, sender=me, done=done)
        else:
            reply = AcceptReply(status=ReplyStatus.REJECT, n_p=instance.n_p, sender=me, done=done)

    acceptor_metrics["replies"].labels(node_id=me, type=MessageType.ACCEPT.value, status=reply.status.value).inc()
    log.debug("Handled accept", node_id=me, seq=request.seq, n=request.n,
              sender=request.sender, status=reply.status.value, n_p=reply.n_p)
    return reply


def handle_decided(instances: InstanceLog, request: DecidedRequest, me: int, done: int) -> DecidedReply:
    """
    Record the decision for ``request.seq``.

    Repeated deliveries of the same decision are no-ops; decisions for
    forgotten instances are acknowledged and ignored.

    Raises:
        InvariantViolation: if the instance was already decided with a
            different value
    """
    acceptor_metrics["decided_received"].labels(node_id=me).inc()

    with instances.mutate(request.seq) as instance:
        if instance is not None:
            if instance.decided:
                if instance.decided_value != request.value:
                    log.critical("Conflicting decision", node_id=me, seq=request.seq,
                                 decided_value=instance.decided_value, new_value=request.value,
                                 sender=request.sender)
                    raise InvariantViolation(request.seq, instance.decided_value, request.value)
            else:
                instance.decided = True
                instance.decided_value = request.value
                log.info("Instance decided", node_id=me, seq=request.seq, sender=request.sender)

    return DecidedReply(sender=me, done=done)
