# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Test suite registry.

A test suite is a named setup callback. For every image under test the
CLI creates a fresh ``TestWorkflow`` named after the suite and passes it
to the callback, which declares the VMs, networks and tests the suite
needs.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from imagetest.exceptions import ConfigurationError

if TYPE_CHECKING:
    from imagetest.graph.workflow import TestWorkflow

SetupFunc = Callable[["TestWorkflow"], None]


@dataclass(frozen=True)
class SuiteDefinition:
    """A registered test suite.

    Attributes:
        name: Suite name; also the name of its compiled test package.
        setup: Callback that builds the suite's workflow for one image.
        description: One-line summary shown by ``imagetest suites``.
    """

    name: str
    setup: SetupFunc
    description: str = ""


class SuiteRegistry:
    """Keeps test suites in registration order.

    Example:
        >>> registry = SuiteRegistry()
        >>> registry.register("imageboot", imageboot.setup)
        >>> [s.name for s in registry.iter_suites(filter="^image")]
        ['imageboot']
    """

    def __init__(self) -> None:
        self._suites: dict[str, SuiteDefinition] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._suites

    def __len__(self) -> int:
        return len(self._suites)

    def register(self, name: str, setup: SetupFunc, description: str = "") -> SuiteDefinition:
        """Register a suite.

        Raises:
            ValueError: If a suite with the same name is already registered.
        """
        if name in self._suites:
            raise ValueError(f"Test suite '{name}' is already registered")
        suite = SuiteDefinition(name=name, setup=setup, description=description)
        self._suites[name] = suite
        return suite

    def get(self, name: str) -> SuiteDefinition:
        """Return a suite by name.

        Raises:
            ConfigurationError: If no suite has that name.
        """
        try:
            return self._suites[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown test suite '{name}'",
                suggestion=f"Available suites: {', '.join(self._suites)}",
            ) from None

    def iter_suites(self, filter: str = "", exclude: str = "") -> Iterator[SuiteDefinition]:
        """Yield the suites selected by the filter regexes.

        Args:
            filter: Only suites whose names match are yielded. Empty
                selects every suite.
            exclude: Suites whose names match are skipped. Empty skips
                none.
        """
        include_re = re.compile(filter) if filter else None
        exclude_re = re.compile(exclude) if exclude else None
        for suite in self._suites.values():
            if include_re is not None and not include_re.search(suite.name):
                continue
            if exclude_re is not None and exclude_re.search(suite.name):
                continue
            yield suite


default_registry = SuiteRegistry()


def register_suite(name: str, setup: SetupFunc, description: str = "") -> SuiteDefinition:
    """Register a suite in the default registry."""
    return default_registry.register(name, setup, description)


def iter_suites(filter: str = "", exclude: str = "") -> Iterator[SuiteDefinition]:
    """Yield the suites of the default registry selected by the filters."""
    return default_registry.iter_suites(filter, exclude)
