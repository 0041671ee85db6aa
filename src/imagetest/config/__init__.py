# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Configuration module for imagetest.

This module provides the run configuration schema and its YAML loader.
"""

from imagetest.config.loader import ConfigLoader, build_config, load_config, load_config_string
from imagetest.config.schema import RunConfig, parse_duration

__all__ = [
    "ConfigLoader",
    "RunConfig",
    "build_config",
    "load_config",
    "load_config_string",
    "parse_duration",
]
