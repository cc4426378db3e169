"""
File: common/logging.py
Unified logging setup for Paxos peers.

structlog produces key/value events; the standard library handlers render
them (and any plain ``logging`` records from libraries such as uvicorn or
httpx) as one JSON object per line.
"""
import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

import structlog

from common.utils import get_debug_mode, get_env_str

LOG_DIR = get_env_str("LOG_DIR", "")

# Pre-processing shared by structlog events and foreign stdlib records
SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _component_adder(component: str):
    def add_component(logger, method_name, event_dict):
        event_dict.setdefault("component", component)
        return event_dict
    return add_component


def build_formatter(component: str) -> structlog.stdlib.ProcessorFormatter:
    """
    Build the JSON formatter used by every handler.

    Args:
        component: Name stamped on every line (e.g. "paxos-0")

    Returns:
        structlog.stdlib.ProcessorFormatter: Formatter for stdlib handlers
    """
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=SHARED_PROCESSORS,
        processors=[
            _component_adder(component),
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def setup_logging(component_name: str, debug: Optional[bool] = None, log_dir: Optional[str] = None):
    """
    Configure logging for a component.

    Args:
        component_name: Name of the component
        debug: If True, enable DEBUG records (overrides the DEBUG variable)
        log_dir: Directory for a rotating log file; empty disables file logging
            (overrides the LOG_DIR variable)

    Returns:
        A structlog logger bound to the component
    """
    debug_enabled = debug if debug is not None else get_debug_mode()
    logs_directory = log_dir if log_dir is not None else LOG_DIR
    level = logging.DEBUG if debug_enabled else logging.INFO

    structlog.configure(
        processors=SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = build_formatter(component_name)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if logs_directory:
        os.makedirs(logs_directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(logs_directory, f"{component_name}.log"),
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    log = structlog.get_logger(component_name)
    log.info("Logging initialized", debug=debug_enabled, log_dir=logs_directory or None)
    return log


def set_debug_level(enabled: bool):
    """
    Switch DEBUG records on or off at runtime.

    Args:
        enabled: If True, enable DEBUG
    """
    level = logging.DEBUG if enabled else logging.INFO
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)

    structlog.get_logger().info("Debug level changed", enabled=enabled)
