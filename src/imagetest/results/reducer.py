# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Reduction of parsed test logs into suite results.

Each workflow produces one ``TestSuiteResult`` built from the logs of all
of its VMs. The results of a whole run are collected in ``TestSuites``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from imagetest.results.parser import GoTestLogParser, ResultParser, TestCase

logger = logging.getLogger(__name__)


def format_seconds(seconds: float) -> str:
    """Format a duration the way JUnit reports expect it."""
    return f"{seconds:.3f}"


@dataclass
class TestSuiteResult:
    """The result of running one test suite against one image.

    Attributes:
        name: Suite name, usually ``<suite>-<image>``.
        tests: Number of test cases.
        failures: Number of failed test cases.
        errors: Number of errors that prevented tests from running.
        skipped: Number of skipped test cases.
        disabled: Number of disabled test cases.
        time: Total duration formatted with three decimals.
        cases: The test cases.
        system_out: Free-form output, such as an execution error.
    """

    __test__ = False

    name: str
    tests: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0
    disabled: int = 0
    time: str = "0.000"
    cases: list[TestCase] = field(default_factory=list)
    system_out: str | None = None

    @classmethod
    def from_error(cls, name: str, message: str) -> TestSuiteResult:
        """Build the result of a suite that could not run."""
        return cls(name=name, errors=1, system_out=message)

    @classmethod
    def from_skip(cls, name: str, message: str) -> TestSuiteResult:
        """Build the result of a suite that was skipped."""
        return cls(name=name, skipped=1, system_out=message)

    @property
    def seconds(self) -> float:
        return float(self.time)


def reduce_to_suite(
    logs: Iterable[str],
    name: str,
    parser: ResultParser | None = None,
) -> TestSuiteResult:
    """Parse the logs of one workflow and fold them into a suite result.

    Args:
        logs: Raw test output, one entry per VM.
        name: Name of the resulting suite.
        parser: Log parser; defaults to ``GoTestLogParser``.

    Returns:
        The suite result. ``errors`` and ``disabled`` are always 0.

    Raises:
        ResultParseError: If any log is malformed.
    """
    parser = parser or GoTestLogParser()
    cases: list[TestCase] = []
    for log in logs:
        cases.extend(parser.parse(log))

    suite = TestSuiteResult(
        name=name,
        tests=len(cases),
        failures=sum(1 for c in cases if c.failed),
        skipped=sum(1 for c in cases if c.skipped),
        time=format_seconds(sum(c.seconds for c in cases)),
        cases=cases,
    )
    logger.debug(
        f"Reduced {name}: {suite.tests} tests, {suite.failures} failures, "
        f"{suite.skipped} skipped"
    )
    return suite


@dataclass
class TestSuites:
    """Results of every workflow in a run.

    Totals are the sums over the contained suites.
    """

    __test__ = False

    suites: list[TestSuiteResult] = field(default_factory=list)
    name: str = "imagetest"

    def add(self, suite: TestSuiteResult) -> None:
        self.suites.append(suite)

    @property
    def tests(self) -> int:
        return sum(s.tests for s in self.suites)

    @property
    def failures(self) -> int:
        return sum(s.failures for s in self.suites)

    @property
    def errors(self) -> int:
        return sum(s.errors for s in self.suites)

    @property
    def skipped(self) -> int:
        return sum(s.skipped for s in self.suites)

    @property
    def disabled(self) -> int:
        return sum(s.disabled for s in self.suites)

    @property
    def time(self) -> str:
        return format_seconds(sum(s.seconds for s in self.suites))

    def has_failures(self) -> bool:
        """Return True if any suite failed or errored."""
        return self.errors + self.failures > 0
