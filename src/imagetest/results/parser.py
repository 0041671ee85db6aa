# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Test log parsers.

The in-guest test wrapper uploads the verbose output of ``go test -v``
for every VM. Parsers turn that text into ``TestCase`` records; the
reducer then folds the cases of one workflow into a suite result.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from imagetest.exceptions import ResultParseError

# Markers that switch which test subsequent output belongs to
_CONTROL_LINE = re.compile(r"^=== (RUN|CONT|NAME|PAUSE)\s+(\S+)\s*$")

# Any line carrying a result marker, well formed or not
_RESULT_MARKER = re.compile(r"^\s*--- (PASS|FAIL|SKIP)\b")

_RESULT_LINE = re.compile(
    r"^\s*--- (?P<status>PASS|FAIL|SKIP): (?P<name>\S+) \((?P<seconds>[0-9]+(?:\.[0-9]+)?)s\)\s*$"
)


@dataclass
class TestCase:
    """One test result in a suite.

    Attributes:
        name: Test name; subtests use ``Parent/sub``.
        classname: JUnit class name. Empty for go tests.
        time: Duration in seconds formatted with three decimals.
        failure: Output of a failed test, or None if it did not fail.
        skipped: True if the test was skipped.
    """

    __test__ = False

    name: str
    classname: str = ""
    time: str = "0.000"
    failure: str | None = None
    skipped: bool = False

    @property
    def failed(self) -> bool:
        return self.failure is not None

    @property
    def seconds(self) -> float:
        return float(self.time)


class ResultParser(ABC):
    """Turns raw test output into test cases."""

    @abstractmethod
    def parse(self, text: str) -> list[TestCase]:
        """Parse raw test output.

        Args:
            text: The complete output of one test run.

        Returns:
            The test cases, in the order the tests started.

        Raises:
            ResultParseError: If the output is malformed.
        """


@dataclass
class _RunningTest:
    order: int
    output: list[str] = field(default_factory=list)


class GoTestLogParser(ResultParser):
    """Parser for the output of ``go test -v``.

    Output lines are attributed to the test named by the latest ``=== RUN``,
    ``=== CONT`` or ``=== NAME`` line. A failed test's failure text is the
    indented output attributed to it, with indentation preserved.

    Example:
        >>> cases = GoTestLogParser().parse(
        ...     "=== RUN   TestBoot\\n--- PASS: TestBoot (0.01s)\\nPASS\\n"
        ... )
        >>> cases[0].name, cases[0].time
        ('TestBoot', '0.010')
    """

    def parse(self, text: str) -> list[TestCase]:
        running: dict[str, _RunningTest] = {}
        finished: list[tuple[int, TestCase]] = []
        current: str | None = None
        next_order = 0

        for line_number, line in enumerate(text.splitlines(), start=1):
            control = _CONTROL_LINE.match(line)
            if control:
                action, name = control.groups()
                if action == "PAUSE":
                    continue
                if name not in running:
                    running[name] = _RunningTest(order=next_order)
                    next_order += 1
                current = name
                continue

            if _RESULT_MARKER.match(line):
                result = _RESULT_LINE.match(line)
                if result is None:
                    raise ResultParseError(
                        f"Malformed test result line: {line.strip()!r}",
                        line_number=line_number,
                    )
                name = result.group("name")
                test = running.pop(name, None)
                if test is None:
                    test = _RunningTest(order=next_order)
                    next_order += 1
                status = result.group("status")
                case = TestCase(
                    name=name,
                    time=f"{float(result.group('seconds')):.3f}",
                    skipped=status == "SKIP",
                )
                if status == "FAIL":
                    case.failure = "\n".join(test.output)
                finished.append((test.order, case))
                if current == name:
                    current = None
                continue

            if current is not None and current in running and line[:1].isspace():
                running[current].output.append(line)

        finished.sort(key=lambda item: item[0])
        return [case for _, case in finished]
