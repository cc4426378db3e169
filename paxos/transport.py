"""
File: paxos/transport.py
Transports that carry Paxos requests between peers.

A transport delivers one request to one peer and returns its reply, or
None when no reply arrived (unreachable peer, transport error, dropped
message). It never retries: retrying is the proposer's job, and the
caller bounds every call with its own timeout.

Two implementations are provided:
- LocalNetwork / LocalTransport: peers living in the same event loop,
  with partitions and deaf peers for exercising failure scenarios
- HttpTransport: peers in separate processes, reached over HTTP (/rpc)
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

import httpx
import structlog
from pydantic import ValidationError

from common.communication import HttpClient
from paxos.errors import MessageDropped, PeerKilledError
from paxos.messages import parse_reply

log = structlog.get_logger()


class Transport(ABC):
    """Delivery of a single request to a single peer."""

    @abstractmethod
    async def call(self, peer: int, request):
        """
        Send ``request`` to ``peer``.

        Returns:
            The reply model, or None if no reply was received
        """

    def bind(self, peer) -> None:
        """Attach the local peer, for transports that deliver to it directly."""

    async def close(self) -> None:
        """Release any resources held by the transport."""


class LocalNetwork:
    """
    In-process network connecting peers that share an event loop.

    Requests and replies are deep-copied on the way through, the way a
    real wire would, and every hop yields to the event loop so that
    concurrent proposers interleave. Reachability is controlled with
    ``partition``, ``heal`` and ``set_deaf``.
    """

    def __init__(self):
        self.peers: Dict[int, object] = {}
        self._groups: Optional[List[Set[int]]] = None
        self._deaf: Set[int] = set()

    def register(self, index: int, peer) -> None:
        self.peers[index] = peer

    def unregister(self, index: int) -> None:
        self.peers.pop(index, None)

    def transport(self, me: int) -> "LocalTransport":
        return LocalTransport(self, me)

    def partition(self, *groups: Iterable[int]) -> None:
        """
        Split the network: peers only reach peers of their own group.

        A peer listed in no group is cut off from everyone.
        """
        self._groups = [set(group) for group in groups]
        log.info("Network partitioned", groups=[sorted(group) for group in self._groups])

    def heal(self) -> None:
        self._groups = None
        self._deaf.clear()
        log.info("Network healed")

    def set_deaf(self, index: int, deaf: bool = True) -> None:
        """A deaf peer still sends requests and hears replies, but receives no requests."""
        if deaf:
            self._deaf.add(index)
        else:
            self._deaf.discard(index)

    def reachable(self, src: int, dst: int) -> bool:
        if src == dst or self._groups is None:
            return True
        return any(src in group and dst in group for group in self._groups)

    async def deliver(self, src: int, dst: int, request):
        if dst in self._deaf or not self.reachable(src, dst):
            return None
        peer = self.peers.get(dst)
        if peer is None:
            return None

        await asyncio.sleep(0)
        try:
            reply = peer.handle(request.model_copy(deep=True))
        except (MessageDropped, PeerKilledError):
            return None

        await asyncio.sleep(0)
        if not self.reachable(dst, src):
            return None
        return reply.model_copy(deep=True)


class LocalTransport(Transport):
    """One peer's view of a LocalNetwork."""

    def __init__(self, network: LocalNetwork, me: int):
        self.network = network
        self.me = me

    def bind(self, peer) -> None:
        self.network.register(self.me, peer)

    async def call(self, peer: int, request):
        return await self.network.deliver(self.me, peer, request)

    async def close(self) -> None:
        if self.network.peers.get(self.me) is not None:
            self.network.unregister(self.me)


class HttpTransport(Transport):
    """
    Sends requests as JSON to ``{address}/rpc`` of the target peer.

    Attributes:
        peers: Base URL of every peer, indexed like the group
        http: Shared httpx client wrapper
    """

    def __init__(self, peers: List[str], timeout: float = 0.5):
        self.peers = peers
        self.http = HttpClient(timeout=timeout)

    async def call(self, peer: int, request):
        url = f"{self.peers[peer].rstrip('/')}/rpc"
        try:
            data = await self.http.post(url, json=request.model_dump(mode="json"))
        except httpx.HTTPError as e:
            log.debug("No reply from peer", peer=peer, url=url, error=str(e))
            return None

        try:
            return parse_reply(data)
        except ValidationError as e:
            log.warning("Malformed reply from peer", peer=peer, url=url, error=str(e))
            return None

    async def close(self) -> None:
        await self.http.close()
