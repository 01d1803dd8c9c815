from __future__ import annotations

from replprobe.config.loader import config_from_mapping, load_config, load_config_file
from replprobe.config.models import (
    EndpointConfig,
    KVVersion,
    OutputConfig,
    ProbeConfig,
    RetryConfig,
    SecretLocation,
)

__all__ = [
    "EndpointConfig",
    "KVVersion",
    "OutputConfig",
    "ProbeConfig",
    "RetryConfig",
    "SecretLocation",
    "config_from_mapping",
    "load_config",
    "load_config_file",
]
