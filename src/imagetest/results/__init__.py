# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Result reduction for imagetest.

This module parses raw test logs, folds them into per-workflow suite
results and writes the run report as JUnit XML.
"""

from imagetest.results.junit import to_junit_xml, write_junit
from imagetest.results.parser import GoTestLogParser, ResultParser, TestCase
from imagetest.results.reducer import TestSuiteResult, TestSuites, reduce_to_suite

__all__ = [
    "GoTestLogParser",
    "ResultParser",
    "TestCase",
    "TestSuiteResult",
    "TestSuites",
    "reduce_to_suite",
    "to_junit_xml",
    "write_junit",
]
