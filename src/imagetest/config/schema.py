# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Pydantic models for imagetest run configuration.

A ``RunConfig`` holds every setting of one ``imagetest run`` invocation.
It can be loaded from YAML and is then overridden by command line flags.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from imagetest.exceptions import ConfigurationError

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")

_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> float:
    """Parse a Go-style duration into seconds.

    Args:
        value: A duration such as ``"60s"``, ``"1m30s"``, ``"1h2m3s"`` or
            ``"500ms"``. ``"0"`` is accepted as zero.

    Returns:
        The duration in seconds.

    Raises:
        ValueError: If the value is not a valid duration.

    Example:
        >>> parse_duration("1m30s")
        90.0
    """
    text = value.strip()
    if text == "0":
        return 0.0
    if not text:
        raise ValueError("invalid duration: empty string")

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        position = match.end()
    if position != len(text):
        raise ValueError(f"invalid duration: '{value}'")
    return total


def _split_list(value: object) -> object:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


RunMode = Literal["run", "print", "validate"]


class RunConfig(BaseModel):
    """Settings for one run of the test orchestrator.

    Example:
        ```yaml
        project: my-project
        zone: us-central1-a,us-central1-b
        images: debian-12,rhel-9
        filter: ^(imageboot|network)$
        parallel_count: 10
        parallel_stagger: 30s
        ```
    """

    project: str = ""
    """Project the test resources are created in."""

    test_projects: list[str] = Field(default_factory=list)
    """Projects available for round-robin placement. Defaults to ``project``."""

    zones: list[str] = Field(default_factory=lambda: ["us-central1-a"], alias="zone")
    """Zones to create resources in. Several zones are used round-robin."""

    images: list[str] = Field(default_factory=list)
    """Images to test, as short names or full image URLs."""

    filter: str = ""
    """Only run test suites whose names match this regex."""

    exclude: str = ""
    """Skip test suites whose names match this regex."""

    exclude_discrete_tests: str = ""
    """Regex of individual tests the guests skip."""

    parallel_count: int = Field(default=5, ge=1)
    """Maximum number of workflows running at once."""

    parallel_stagger: str = "60s"
    """Minimum delay between two workflow launches."""

    timeout: str = "45m"
    """Default per-step timeout handed to the engine."""

    out_path: str = "junit.xml"
    """Path of the JUnit report."""

    mode: RunMode = "run"
    """``run`` executes workflows; ``print`` and ``validate`` do not."""

    set_exit_status: bool = True
    """Exit with status 1 when any test failed or errored."""

    machine_type: str = ""
    """Deprecated. Overrides both ``x86_shape`` and ``arm64_shape``."""

    x86_shape: str = "n1-standard-1"
    """Machine type for X86_64 images."""

    arm64_shape: str = "t2a-standard-1"
    """Machine type for ARM64 images."""

    use_reservations: bool = False
    """Consume reservations when creating VMs."""

    reservation_urls: list[str] = Field(default_factory=list)
    """Specific reservations to consume; any reservation when empty."""

    accelerator_type: str = ""
    """Accelerator type requested by accelerator suites."""

    results_path: str = ""
    """Local directory acting as the results object store."""

    local_path: str = ""
    """Directory to mirror run artifacts into after the run."""

    engine_binary: str = "daisy"
    """Workflow engine executable."""

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("test_projects", "zones", "images", "reservation_urls", mode="before")
    @classmethod
    def split_comma_lists(cls, v: object) -> object:
        """Accept comma separated strings for list settings."""
        return _split_list(v)

    @field_validator("zones")
    @classmethod
    def validate_zones(cls, v: list[str]) -> list[str]:
        """Ensure at least one zone and that each names its region."""
        if not v:
            raise ValueError("at least one zone is required")
        for zone in v:
            if "-" not in zone:
                raise ValueError(f"zone '{zone}' has no region separator")
        return v

    @field_validator("parallel_stagger", "timeout")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        """Ensure durations parse."""
        parse_duration(v)
        return v

    @field_validator("filter", "exclude", "exclude_discrete_tests")
    @classmethod
    def validate_regex(cls, v: str) -> str:
        """Ensure regexes compile."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid regex '{v}': {e}") from e
        return v

    @model_validator(mode="after")
    def apply_machine_type_override(self) -> RunConfig:
        """Let the deprecated machine type override both shapes."""
        if self.machine_type:
            self.x86_shape = self.machine_type
            self.arm64_shape = self.machine_type
        if not self.test_projects and self.project:
            self.test_projects = [self.project]
        return self

    @property
    def stagger_seconds(self) -> float:
        return parse_duration(self.parallel_stagger)

    def check_runnable(self) -> None:
        """Ensure the settings are complete enough to build workflows.

        Raises:
            ConfigurationError: If no image or no project is configured.
        """
        if not self.images:
            raise ConfigurationError("No images to test", field_path="images")
        if not self.project:
            raise ConfigurationError(
                "A project is required",
                suggestion="Pass the project to create resources in with --project",
                field_path="project",
            )
