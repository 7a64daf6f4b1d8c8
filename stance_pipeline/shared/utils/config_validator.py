"""
Configuration validation utilities.

Typed access to the environment variables that tune each stage, with
errors that name the offending variable.
"""

import os
from typing import Any, Callable, Optional, TypeVar

N = TypeVar("N", int, float)


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def get_env_or_default(name: str, default: str) -> str:
    """
    Get an environment variable, treating empty values as unset.

    Args:
        name: Environment variable name
        default: Default value if not set

    Returns:
        The value of the environment variable or the default
    """
    value = os.getenv(name)
    return value if value else default


def _check_range(name: str, value: N, min_value: Optional[N], max_value: Optional[N]) -> N:
    if min_value is not None and value < min_value:
        raise ConfigurationError(
            f"Value for {name} ({value}) is below minimum allowed value ({min_value})"
        )
    if max_value is not None and value > max_value:
        raise ConfigurationError(
            f"Value for {name} ({value}) exceeds maximum allowed value ({max_value})"
        )
    return value


def _numeric_env(
    name: str,
    parse: Callable[[str], N],
    kind: str,
    default: Optional[N],
    min_value: Optional[N],
    max_value: Optional[N],
) -> N:
    value_str = os.getenv(name)

    if not value_str or not value_str.strip():
        if default is None:
            raise ConfigurationError(f"Missing required {kind} environment variable: {name}")
        return default

    try:
        value = parse(value_str.strip())
    except ValueError:
        raise ConfigurationError(
            f"Invalid {kind} value for {name}: '{value_str}'\n"
            f"Expected {'an' if kind[0] in 'aeiou' else 'a'} {kind} value."
        )

    return _check_range(name, value, min_value, max_value)


def validate_int_env(name: str, default: Optional[int] = None, min_value: Optional[int] = None,
                     max_value: Optional[int] = None) -> int:
    """
    Validate an integer environment variable such as ``CLUSTER_PARALLEL``.

    Args:
        name: Environment variable name
        default: Default value if not set (None makes the variable required)
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        The validated integer value

    Raises:
        ConfigurationError: If the value is missing, not an integer or out of range
    """
    return _numeric_env(name, int, "integer", default, min_value, max_value)


def validate_float_env(name: str, default: float, min_value: Optional[float] = None,
                       max_value: Optional[float] = None) -> float:
    """
    Validate a numeric environment variable such as ``HTTP_TIMEOUT_SECONDS``.

    Raises:
        ConfigurationError: If the value is not numeric or out of range
    """
    return _numeric_env(name, float, "numeric", default, min_value, max_value)


def check_config_override(override: Optional[Any], env_name: str,
                          required: bool = True) -> Optional[Any]:
    """
    Prefer a programmatic override, falling back to the environment.

    Args:
        override: Override value (if provided programmatically)
        env_name: Environment variable name to check
        required: Whether the configuration is required

    Returns:
        The override value if provided, otherwise the env value

    Raises:
        ConfigurationError: If required and neither override nor env is set
    """
    if override is not None:
        return override

    value = os.getenv(env_name)

    if required and not value:
        raise ConfigurationError(
            f"Missing required configuration: {env_name}\n"
            f"Provide via environment variable or programmatic override."
        )

    return value
