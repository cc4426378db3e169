import argparse
import asyncio

import structlog
import uvicorn

from common.logging import setup_logging
from common.utils import parse_peer_list
from paxos.api import app, initialize
from paxos.config import load_config
from paxos.peer import Paxos
from paxos.transport import HttpTransport

log = structlog.get_logger()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Paxos peer")
    parser.add_argument("--config", type=str, help="Path to the YAML configuration file")
    parser.add_argument("--id", type=int, help="Index of this peer in the peer list")
    parser.add_argument("--peers", type=str, help="Comma-separated list of peer base URLs")
    parser.add_argument("--host", type=str, help="Interface to listen on")
    parser.add_argument("--port", type=int, help="Port to listen on")
    parser.add_argument("--unreliable", action="store_true", help="Start with fault injection enabled")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def build_config(args):
    """Merge command line flags over the file/environment configuration."""
    config = load_config(args.config)
    overrides = {}
    if args.id is not None:
        overrides["me"] = args.id
    if args.peers:
        overrides["peers"] = parse_peer_list(args.peers)
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.unreliable:
        overrides["unreliable"] = True
    if args.debug:
        overrides["debug"] = True
    if overrides:
        config = config.model_validate({**config.model_dump(), **overrides})
    return config


async def main(argv=None):
    """
    Entry point of a Paxos peer process.
    """
    args = parse_args(argv)
    config = build_config(args)

    setup_logging(f"paxos-{config.me}", debug=config.debug, log_dir=config.log_dir)

    if not config.peers:
        log.error("No peers configured; set PAXOS_PEERS or --peers")
        raise SystemExit(2)

    log.info("Starting paxos peer", node_id=config.me, peers=config.peers, port=config.port)

    transport = HttpTransport(config.peers, timeout=config.rpc_timeout)
    paxos = Paxos(config.peers, config.me, transport=transport, config=config)
    initialize(paxos)

    server = uvicorn.Server(uvicorn.Config(app, host=config.host, port=config.port, log_level="info"))
    try:
        await server.serve()
    finally:
        await paxos.kill()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
