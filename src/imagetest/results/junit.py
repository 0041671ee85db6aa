# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""JUnit XML output for run results."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

from imagetest.results.reducer import TestSuiteResult, TestSuites

logger = logging.getLogger(__name__)

_COUNT_ATTRIBUTES = ("tests", "failures", "errors", "skipped", "disabled")


def _suite_element(suite: TestSuiteResult) -> ET.Element:
    element = ET.Element("testsuite", name=suite.name)
    for attribute in _COUNT_ATTRIBUTES:
        element.set(attribute, str(getattr(suite, attribute)))
    element.set("time", suite.time)

    for case in suite.cases:
        case_element = ET.SubElement(
            element,
            "testcase",
            name=case.name,
            classname=case.classname,
            time=case.time,
        )
        if case.failure is not None:
            failure = ET.SubElement(case_element, "failure", message="Failed")
            failure.text = case.failure
        elif case.skipped:
            ET.SubElement(case_element, "skipped")

    if suite.system_out:
        ET.SubElement(element, "system-out").text = suite.system_out
    return element


def to_junit_xml(suites: TestSuites) -> str:
    """Render run results as a JUnit XML document.

    Args:
        suites: The run results.

    Returns:
        The XML document, including the XML declaration.
    """
    root = ET.Element("testsuites", name=suites.name)
    for attribute in _COUNT_ATTRIBUTES:
        root.set(attribute, str(getattr(suites, attribute)))
    root.set("time", suites.time)
    for suite in suites.suites:
        root.append(_suite_element(suite))

    ET.indent(root)
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def write_junit(suites: TestSuites, path: str | Path) -> Path:
    """Write run results as JUnit XML, creating parent directories.

    Args:
        suites: The run results.
        path: Destination file.

    Returns:
        The path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_junit_xml(suites), encoding="utf-8")
    logger.info(f"Wrote JUnit report for {len(suites.suites)} suites to {path}")
    return path
