import logging
import os
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1", "yes", "on")


def get_env_var(var_name: str, default: Any = None) -> Any:
    """
    Read an environment variable, with an optional default.

    Args:
        var_name: Name of the environment variable
        default: Value returned when the variable is not set

    Returns:
        The variable's value or the default
    """
    return os.environ.get(var_name, default)


def get_env_str(var_name: str, default: Optional[str] = None) -> Optional[str]:
    return get_env_var(var_name, default)


def get_env_int(var_name: str, default: Optional[int] = None) -> Optional[int]:
    """
    Read an integer environment variable.

    Falls back to the default (and logs a warning) when the value
    cannot be parsed.
    """
    value = get_env_var(var_name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {var_name}: {value!r}")
        return default


def get_env_float(var_name: str, default: Optional[float] = None) -> Optional[float]:
    """
    Read a float environment variable.

    Falls back to the default (and logs a warning) when the value
    cannot be parsed.
    """
    value = get_env_var(var_name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {var_name}: {value!r}")
        return default


def get_env_bool(var_name: str, default: Optional[bool] = None) -> Optional[bool]:
    value = get_env_var(var_name)
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUE_VALUES


def get_debug_mode() -> bool:
    """
    Check whether debug mode is enabled through the DEBUG variable.

    Returns:
        bool: True if debug mode is on
    """
    return bool(get_env_bool("DEBUG", False))


def parse_peer_list(raw: str) -> List[str]:
    """
    Split a comma-separated list of peer addresses.

    Args:
        raw: e.g. "http://peer-0:8080, http://peer-1:8080"

    Returns:
        List[str]: Addresses in order, blanks removed
    """
    return [item.strip() for item in raw.split(",") if item.strip()]
