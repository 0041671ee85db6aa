"""Tests for GoTestLogParser.

Tests cover:
- Passing, failing and skipped tests
- Failure text attribution
- Subtests and parallel test output
- Malformed result lines
"""

import pytest

from imagetest.exceptions import ResultParseError
from imagetest.results.parser import GoTestLogParser, TestCase


@pytest.fixture
def parser() -> GoTestLogParser:
    """Return a go test log parser."""
    return GoTestLogParser()


class TestGoTestLogParser:
    """Tests for parsing go test -v output."""

    def test_passing(self, parser: GoTestLogParser, passing_log: str) -> None:
        """Test passing tests are reported with three-decimal times."""
        cases = parser.parse(passing_log)

        assert [c.name for c in cases] == ["TestGuestBoot", "TestGuestReboot"]
        assert [c.time for c in cases] == ["0.020", "1.500"]
        assert not any(c.failed or c.skipped for c in cases)
        assert all(c.classname == "" for c in cases)

    def test_failing(self, parser: GoTestLogParser, failing_log: str) -> None:
        """Test the indented output of a failed test becomes its failure text."""
        (case,) = parser.parse(failing_log)

        assert case.name == "TestDiskResize"
        assert case.failed is True
        assert case.failure == (
            "    disk_test.go:42: expected 200GB, got 10GB\n"
            "    disk_test.go:43: resize did not happen"
        )
        assert case.time == "0.030"

    def test_skipped(self, parser: GoTestLogParser) -> None:
        """Test skipped tests are marked and not failed."""
        log = (
            "=== RUN   TestSecureBoot\n"
            "    secureboot_test.go:10: not supported\n"
            "--- SKIP: TestSecureBoot (0.00s)\n"
        )
        (case,) = parser.parse(log)
        assert case.skipped is True
        assert case.failure is None

    def test_failed_without_output(self, parser: GoTestLogParser) -> None:
        """Test a failed test with no output has an empty failure text."""
        (case,) = parser.parse("=== RUN   TestA\n--- FAIL: TestA (1s)\n")
        assert case.failure == ""
        assert case.time == "1.000"

    def test_unindented_output_ignored(self, parser: GoTestLogParser) -> None:
        """Test unindented lines are not part of the failure text."""
        log = (
            "=== RUN   TestA\n"
            "some stray line\n"
            "    a_test.go:1: boom\n"
            "--- FAIL: TestA (0.10s)\n"
            "FAIL\n"
            "exit status 1\n"
        )
        (case,) = parser.parse(log)
        assert case.failure == "    a_test.go:1: boom"

    def test_subtests(self, parser: GoTestLogParser) -> None:
        """Test subtests are reported with their full names."""
        log = (
            "=== RUN   TestNetwork\n"
            "=== RUN   TestNetwork/ping\n"
            "    --- PASS: TestNetwork/ping (0.10s)\n"
            "--- PASS: TestNetwork (0.20s)\n"
        )
        cases = parser.parse(log)
        assert [c.name for c in cases] == ["TestNetwork", "TestNetwork/ping"]

    def test_parallel_output_attribution(self, parser: GoTestLogParser) -> None:
        """Test CONT lines switch which test receives output."""
        log = (
            "=== RUN   TestA\n"
            "=== PAUSE TestA\n"
            "=== RUN   TestB\n"
            "=== PAUSE TestB\n"
            "=== CONT  TestA\n"
            "    a_test.go:1: a failed\n"
            "=== CONT  TestB\n"
            "    b_test.go:1: b output\n"
            "--- FAIL: TestA (0.01s)\n"
            "--- FAIL: TestB (0.02s)\n"
        )
        cases = parser.parse(log)
        assert [c.failure for c in cases] == ["    a_test.go:1: a failed", "    b_test.go:1: b output"]

    def test_result_without_run(self, parser: GoTestLogParser) -> None:
        """Test a result line with no preceding RUN line still counts."""
        (case,) = parser.parse("--- PASS: TestOrphan (0.50s)\n")
        assert case.name == "TestOrphan"
        assert case.seconds == 0.5

    def test_empty_log(self, parser: GoTestLogParser) -> None:
        """Test empty output has no tests."""
        assert parser.parse("") == []

    def test_malformed_result_line(self, parser: GoTestLogParser) -> None:
        """Test a malformed result line raises with its line number."""
        log = "=== RUN   TestA\n--- PASS: TestA (abc)\n"
        with pytest.raises(ResultParseError) as exc_info:
            parser.parse(log)
        assert exc_info.value.line_number == 2


class TestTestCase:
    """Tests for the TestCase record."""

    def test_defaults(self) -> None:
        """Test a new case passed in zero time."""
        case = TestCase(name="TestA")
        assert case.failed is False
        assert case.seconds == 0.0
