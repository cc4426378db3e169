"""
Configuration for a Paxos peer.

Values come from a YAML file (``config/config.yaml`` by default, or the
path in PAXOS_CONFIG) and are then overridden by environment variables.
"""
import os
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import BaseModel, Field, model_validator

from common.utils import (
    get_env_bool, get_env_float, get_env_int, get_env_str, parse_peer_list
)
from paxos.instance import MAX_PEERS

log = structlog.get_logger()

DEFAULT_CONFIG_PATH = "config/config.yaml"


class PaxosConfig(BaseModel):
    """Settings consumed by a peer and its bootstrap."""
    # Group membership: ordered peer addresses and this peer's index in them
    peers: List[str] = Field(default_factory=list)
    me: int = 0

    # Protocol timing
    rpc_timeout: float = 0.5          # seconds per outbound call
    retry_backoff_min: float = 0.01   # seconds between proposer rounds
    retry_backoff_max: float = 0.1
    decided_retries: int = 3          # extra Decided broadcasts to silent peers

    # Fault injection
    unreliable: bool = False
    drop_request_rate: float = Field(0.1, ge=0.0, le=1.0)
    drop_reply_rate: float = Field(0.2, ge=0.0, le=1.0)

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Logging
    debug: bool = False
    log_dir: str = ""

    @model_validator(mode="after")
    def check_group(self):
        if len(self.peers) > MAX_PEERS:
            raise ValueError(f"at most {MAX_PEERS} peers are supported, got {len(self.peers)}")
        if self.peers and not 0 <= self.me < len(self.peers):
            raise ValueError(f"me={self.me} is not an index into {len(self.peers)} peers")
        if self.retry_backoff_max < self.retry_backoff_min:
            raise ValueError("retry_backoff_max must be >= retry_backoff_min")
        return self


def _env_overrides() -> Dict[str, Any]:
    overrides = {
        "me": get_env_int("NODE_ID"),
        "rpc_timeout": get_env_float("RPC_TIMEOUT"),
        "retry_backoff_min": get_env_float("RETRY_BACKOFF_MIN"),
        "retry_backoff_max": get_env_float("RETRY_BACKOFF_MAX"),
        "decided_retries": get_env_int("DECIDED_RETRIES"),
        "unreliable": get_env_bool("UNRELIABLE"),
        "host": get_env_str("HOST"),
        "port": get_env_int("PORT"),
        "debug": get_env_bool("DEBUG"),
        "log_dir": get_env_str("LOG_DIR"),
    }
    peers = get_env_str("PAXOS_PEERS")
    if peers:
        overrides["peers"] = parse_peer_list(peers)
    return {key: value for key, value in overrides.items() if value is not None}


def load_config(path: Optional[str] = None) -> PaxosConfig:
    """
    Load the peer configuration.

    Args:
        path: YAML file to read; defaults to PAXOS_CONFIG or config/config.yaml.
            A missing file is not an error, defaults are used instead.

    Returns:
        PaxosConfig: Validated configuration

    Raises:
        pydantic.ValidationError: If the merged settings are inconsistent
    """
    config_path = path or get_env_str("PAXOS_CONFIG", DEFAULT_CONFIG_PATH)

    data: Dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    else:
        log.warning("Config file not found, using defaults", path=config_path)

    # The file groups settings by section; flatten them
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value

    flat.update(_env_overrides())
    return PaxosConfig(**flat)
