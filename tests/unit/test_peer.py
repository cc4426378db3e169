"""
Unit tests for the Paxos peer API.
"""
import asyncio

import pytest

from paxos import LocalNetwork, MessageDropped, Paxos, PaxosConfig, PeerKilledError
from paxos.messages import DecidedRequest, PrepareRequest, ReplyStatus


def test_constructor_validates_group():
    network = LocalNetwork()

    with pytest.raises(ValueError):
        Paxos([], 0, transport=network.transport(0))
    with pytest.raises(ValueError):
        Paxos(["a", "b"], 2, transport=network.transport(2))


@pytest.mark.asyncio
async def test_single_peer_decides_alone(paxos_group):
    """A group of one is its own majority."""
    # Arrange
    group = paxos_group(1)
    px = group[0]

    # Act
    px.start(0, "only")
    await group.wait_n(0, 1)

    # Assert
    assert px.status(0) == (True, "only")


@pytest.mark.asyncio
async def test_max_tracks_highest_started_seq(paxos_group):
    # Arrange
    group = paxos_group(1)
    px = group[0]
    assert px.max() == -1, "Nothing started yet"

    # Act
    px.start(7, "a")
    px.start(3, "b")

    # Assert
    assert px.max() == 7, "Max is the highest seq passed to start"


@pytest.mark.asyncio
async def test_unknown_instance_is_undecided(paxos_group):
    px = paxos_group(1)[0]

    assert px.status(42) == (False, None)


@pytest.mark.asyncio
async def test_negative_seq_rejected(paxos_group):
    px = paxos_group(1)[0]

    with pytest.raises(ValueError):
        px.start(-1, "x")
    with pytest.raises(ValueError):
        px.status(-1)
    with pytest.raises(ValueError):
        px.done(-2)


@pytest.mark.asyncio
async def test_start_on_decided_instance_spawns_nothing(paxos_group):
    # Arrange
    group = paxos_group(1)
    px = group[0]
    px.start(0, "first")
    await group.wait_n(0, 1)

    # Act
    px.start(0, "second")

    # Assert
    assert px.get_status()["active_proposers"] == 0, "Decided instance needs no proposer"
    assert px.status(0) == (True, "first")


@pytest.mark.asyncio
async def test_done_forgets_instances(paxos_group):
    """In a group of one, done(seq) immediately moves Min past seq."""
    # Arrange
    group = paxos_group(1)
    px = group[0]
    for seq in range(5):
        px.start(seq, f"v{seq}")
    for seq in range(5):
        await group.wait_n(seq, 1)

    # Act
    px.done(2)

    # Assert
    assert px.min() == 3, "Min is done + 1"
    assert px.status(1) == (False, None), "Forgotten instance reports undecided"
    assert px.instances.seqs() == [3, 4], "Instances below Min must be purged"


@pytest.mark.asyncio
async def test_start_below_min_is_noop(paxos_group):
    # Arrange
    group = paxos_group(1)
    px = group[0]
    px.done(4)

    # Act
    px.start(2, "late")
    await asyncio.sleep(0.05)

    # Assert
    assert 2 not in px.instances, "Forgotten instance must not be recreated"
    assert px.status(2) == (False, None)


@pytest.mark.asyncio
async def test_done_never_moves_min_back(paxos_group):
    px = paxos_group(1)[0]
    px.done(5)

    px.done(1)

    assert px.min() == 6


@pytest.mark.asyncio
async def test_min_needs_every_peer(paxos_group):
    """Min stays at 0 until the other peers have reported."""
    group = paxos_group(3)

    group[0].done(10)

    assert group[0].min() == 0


@pytest.mark.asyncio
async def test_handle_learns_piggybacked_done(paxos_group):
    # Arrange
    group = paxos_group(2)
    px = group[0]
    px.done(3)

    # Act
    reply = px.handle(PrepareRequest(seq=9, n=257, sender=1, done=5))

    # Assert
    assert reply.status == ReplyStatus.OK
    assert reply.done == 3, "Reply must carry the local done watermark"
    assert px.tracker.snapshot() == {0: 3, 1: 5}
    assert px.min() == 4
    assert px.rpc_count == 1


@pytest.mark.asyncio
async def test_kill_fails_fast(paxos_group):
    """Every call on a killed peer raises PeerKilledError."""
    # Arrange
    px = paxos_group(1)[0]

    # Act
    await px.kill()
    await px.kill()

    # Assert
    assert px.dead
    with pytest.raises(PeerKilledError):
        px.start(0, "x")
    with pytest.raises(PeerKilledError):
        px.status(0)
    with pytest.raises(PeerKilledError):
        px.done(0)
    with pytest.raises(PeerKilledError):
        px.min()
    with pytest.raises(PeerKilledError):
        px.max()
    with pytest.raises(PeerKilledError):
        px.handle(DecidedRequest(seq=0, value="x", sender=0))


@pytest.mark.asyncio
async def test_kill_cancels_running_proposers(paxos_group):
    # Arrange
    group = paxos_group(3)
    group.network.partition([0], [1, 2])
    px = group[0]
    px.start(0, "stuck")
    await asyncio.sleep(0.05)
    assert px.get_status()["active_proposers"] == 1, "Proposer cannot finish without a majority"

    # Act
    await px.kill()

    # Assert
    assert px.get_status()["active_proposers"] == 0
    assert 0 not in group.network.peers, "Killed peer leaves the network"


def test_dropped_request_is_not_processed():
    """A dropped request never reaches the acceptor."""
    # Arrange
    network = LocalNetwork()
    config = PaxosConfig(unreliable=True, drop_request_rate=1.0, drop_reply_rate=0.0)
    px = Paxos(["a", "b"], 0, transport=network.transport(0), config=config)

    # Act & Assert
    with pytest.raises(MessageDropped):
        px.handle(PrepareRequest(seq=0, n=257, sender=1))
    assert 0 not in px.instances
    assert px.rpc_count == 0


def test_dropped_reply_keeps_state_change():
    """A dropped reply is lost after the acceptor has already acted."""
    # Arrange
    network = LocalNetwork()
    config = PaxosConfig(unreliable=True, drop_request_rate=0.0, drop_reply_rate=1.0)
    px = Paxos(["a", "b"], 0, transport=network.transport(0), config=config)

    # Act & Assert
    with pytest.raises(MessageDropped):
        px.handle(PrepareRequest(seq=0, n=257, sender=1))
    assert px.instances.get(0).n_p == 257, "Promise must be recorded"
    assert px.rpc_count == 1


def test_set_unreliable_toggles_drops():
    network = LocalNetwork()
    config = PaxosConfig(drop_request_rate=1.0)
    px = Paxos(["a", "b"], 0, transport=network.transport(0), config=config)

    px.handle(PrepareRequest(seq=0, n=257, sender=1))
    px.set_unreliable(True)

    assert px.unreliable
    with pytest.raises(MessageDropped):
        px.handle(PrepareRequest(seq=0, n=513, sender=1))


@pytest.mark.asyncio
async def test_get_status_snapshot(paxos_group):
    group = paxos_group(3)
    px = group[1]
    px.done(2)

    status = px.get_status()

    assert status["node_id"] == 1
    assert status["npeers"] == 3
    assert status["done"] == {1: 2}
    assert status["min"] == 0
    assert status["max"] == -1
    assert status["dead"] is False
