# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""YAML run configuration loader with environment variable resolution.

Run settings may be kept in a YAML file instead of being passed as
flags. String values can reference the environment with ``${VAR}`` or
``${VAR:-default}``; flags given on the command line win over the file.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from imagetest.config.schema import RunConfig
from imagetest.exceptions import ConfigurationError

# Pattern to match ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def resolve_env_vars(value: str, max_depth: int = 10) -> str:
    """Resolve ${VAR} and ${VAR:-default} references in a string.

    Values taken from the environment may themselves contain references,
    which are resolved in turn.

    Args:
        value: The string potentially containing env var references.
        max_depth: Maximum recursion depth to prevent infinite loops.

    Returns:
        The string with all references resolved.

    Raises:
        ConfigurationError: If a referenced variable is unset and has no
            default, or the recursion limit is exceeded.
    """
    if max_depth <= 0:
        raise ConfigurationError(
            f"Maximum recursion depth exceeded while resolving environment variables in: {value}",
            suggestion="Check for circular references in your environment variables.",
        )

    def replace_env_var(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2)

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if default_value is not None:
            return default_value
        raise ConfigurationError(
            f"Required environment variable '{var_name}' is not set",
            suggestion=f"Set '{var_name}' or give a default with ${{{var_name}:-value}}",
        )

    result = ENV_VAR_PATTERN.sub(replace_env_var, value)
    if ENV_VAR_PATTERN.search(result):
        return resolve_env_vars(result, max_depth - 1)
    return result


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Resolve environment variables in every string of a YAML document."""
    if isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _validation_error(e: ValidationError, source: str) -> ConfigurationError:
    """Turn a pydantic validation error into a ConfigurationError.

    The first failing field becomes the error's field path.
    """
    lines = []
    field_path = None
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        field_path = field_path or loc or None
        lines.append(f"  - {loc or '<root>'}: {err.get('msg', 'Unknown error')}")
    return ConfigurationError(
        f"Invalid run configuration in '{source}':\n" + "\n".join(lines),
        field_path=field_path,
    )


class ConfigLoader:
    """Loads and validates run configuration from YAML.

    This class handles:
    - YAML parsing with line numbers in syntax errors
    - Environment variable resolution
    - Merging command line overrides
    - Pydantic schema validation
    """

    def __init__(self) -> None:
        """Initialize the config loader with a ruamel.yaml parser."""
        self._yaml = YAML(typ="safe")

    def load(self, path: str | Path, overrides: Mapping[str, Any] | None = None) -> RunConfig:
        """Load a run configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file.
            overrides: Settings that replace the file values.

        Returns:
            A validated RunConfig object.

        Raises:
            ConfigurationError: If the file cannot be read, contains invalid
                YAML syntax, or fails validation.
        """
        path = Path(path)

        if not path.is_file():
            raise ConfigurationError(
                f"Config file not found: {path}",
                suggestion="Check that --config points to an existing YAML file.",
                file_path=str(path),
            )

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read config file '{path}': {e}",
                suggestion="Check file permissions and ensure the file is readable.",
                file_path=str(path),
            ) from e

        return self.load_string(content, source_path=path, overrides=overrides)

    def load_string(
        self,
        content: str,
        source_path: Path | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> RunConfig:
        """Load a run configuration from a YAML string.

        An empty document yields the defaults.

        Args:
            content: The YAML content as a string.
            source_path: Optional path for error messages.
            overrides: Settings that replace the document values.

        Returns:
            A validated RunConfig object.

        Raises:
            ConfigurationError: If the YAML is invalid or fails validation.
        """
        source = str(source_path) if source_path else "<string>"

        try:
            data = self._yaml.load(content)
        except YAMLError as e:
            line_number = None
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                line_number = mark.line + 1
            raise ConfigurationError(
                f"Invalid YAML syntax in '{source}': {e}",
                suggestion="Check the YAML syntax. Common issues include incorrect "
                "indentation, missing colons, or unquoted special characters.",
                file_path=source,
                line_number=line_number,
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration format in '{source}': "
                f"expected a mapping, got {type(data).__name__}",
                suggestion="Ensure the YAML file is a mapping of run settings.",
                file_path=source,
            )

        data = _resolve_env_vars_recursive(data)
        return self._validate(merge_overrides(data, overrides), source)

    def _validate(self, data: dict[str, Any], source: str) -> RunConfig:
        try:
            return RunConfig.model_validate(data)
        except ValidationError as e:
            raise _validation_error(e, source) from e


def merge_overrides(
    data: Mapping[str, Any], overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Return ``data`` with every non-None override applied.

    ``zone`` and ``zones`` name the same setting; an override of either
    replaces both.
    """
    merged = dict(data)
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key in ("zone", "zones"):
            merged.pop("zone", None)
            merged.pop("zones", None)
        merged[key] = value
    return merged


def build_config(overrides: Mapping[str, Any] | None = None) -> RunConfig:
    """Build a run configuration from command line settings alone.

    Raises:
        ConfigurationError: If the settings fail validation.
    """
    try:
        return RunConfig.model_validate(merge_overrides({}, overrides))
    except ValidationError as e:
        raise _validation_error(e, "<command line>") from e


def load_config(path: str | Path, overrides: Mapping[str, Any] | None = None) -> RunConfig:
    """Convenience function to load a run configuration.

    Args:
        path: Path to the YAML configuration file.
        overrides: Settings that replace the file values.

    Returns:
        A validated RunConfig object.

    Raises:
        ConfigurationError: If loading or validation fails.
    """
    return ConfigLoader().load(path, overrides)


def load_config_string(
    content: str,
    source_path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RunConfig:
    """Convenience function to load a run configuration from a string."""
    return ConfigLoader().load_string(content, source_path, overrides)
