"""
Global test configuration.
Fixtures shared by unit and integration tests.
"""
import pytest
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_delay, wait_fixed

from common.logging import setup_logging
from paxos import LocalNetwork, Paxos, PaxosConfig

setup_logging("paxos-tests", debug=False, log_dir="")


class NotDecidedYet(AssertionError):
    """Raised while polling until enough peers have decided."""


class PaxosGroup:
    """
    A Paxos group living in the test's event loop.

    Peers talk over a LocalNetwork, so partitions and deaf peers can be
    set up with ``group.network``.
    """

    def __init__(self, npeers, config):
        self.network = LocalNetwork()
        self.names = [f"local://paxos-{i}" for i in range(npeers)]
        self.peers = [
            Paxos(self.names, i, transport=self.network.transport(i), config=config)
            for i in range(npeers)
        ]

    def __getitem__(self, index):
        return self.peers[index]

    def __len__(self):
        return len(self.peers)

    def __iter__(self):
        return iter(self.peers)

    @property
    def majority(self):
        return len(self.peers) // 2 + 1

    def ndecided(self, seq):
        """Count live peers that decided ``seq``, checking they agree."""
        count = 0
        value = None
        for px in self.peers:
            if px.dead:
                continue
            decided, v = px.status(seq)
            if decided:
                if count > 0:
                    assert v == value, f"decided values do not match; seq={seq} peer={px.me} {v!r} != {value!r}"
                value = v
                count += 1
        return count

    def decided_value(self, seq):
        for px in self.peers:
            if not px.dead:
                decided, value = px.status(seq)
                if decided:
                    return value
        return None

    async def wait_n(self, seq, wanted, timeout=10.0):
        async for attempt in AsyncRetrying(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(0.02),
            retry=retry_if_exception_type(NotDecidedYet),
            reraise=True,
        ):
            with attempt:
                count = self.ndecided(seq)
                if count < wanted:
                    raise NotDecidedYet(f"too few decided; seq={seq} ndecided={count} wanted={wanted}")

    async def wait_majority(self, seq, timeout=10.0):
        await self.wait_n(seq, self.majority, timeout=timeout)

    def check_max(self, seq, maximum):
        count = self.ndecided(seq)
        assert count <= maximum, f"too many decided; seq={seq} ndecided={count} max={maximum}"

    async def wait_min(self, expected, timeout=10.0):
        """Wait until every live peer reports min() == expected."""
        async for attempt in AsyncRetrying(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(0.05),
            retry=retry_if_exception_type(AssertionError),
            reraise=True,
        ):
            with attempt:
                mins = [px.min() for px in self.peers if not px.dead]
                assert all(m == expected for m in mins), f"expected min {expected} everywhere, got {mins}"

    def rpc_total(self):
        return sum(px.rpc_count for px in self.peers)

    async def kill_all(self):
        for px in self.peers:
            await px.kill()


@pytest.fixture
def fast_config():
    """Short timeouts and backoff so scenarios finish quickly."""
    return PaxosConfig(
        rpc_timeout=0.5,
        retry_backoff_min=0.001,
        retry_backoff_max=0.02,
        decided_retries=3,
    )


@pytest.fixture
async def paxos_group(fast_config):
    """
    Factory for Paxos groups on an in-process network.

    Every group created by the test is killed on teardown.
    """
    groups = []

    def make(npeers, **overrides):
        config = fast_config.model_copy(update=overrides) if overrides else fast_config
        group = PaxosGroup(npeers, config)
        groups.append(group)
        return group

    yield make

    for group in groups:
        await group.kill_all()
