# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Exception hierarchy for imagetest.

This module defines all custom exceptions used throughout the application.
All exceptions inherit from ImageTestError and support optional suggestions
to help users resolve issues.
"""

from __future__ import annotations


class ImageTestError(Exception):
    """Base exception for all imagetest errors.

    Supports optional file path, line number, and suggestion to help
    users understand what went wrong and how to fix it.

    Attributes:
        suggestion: Optional actionable advice for resolving the error.
        file_path: Optional path to the file where the error occurred.
        line_number: Optional line number where the error occurred.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
    ) -> None:
        """Initialize an ImageTestError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
        """
        self.suggestion = suggestion
        self.file_path = file_path
        self.line_number = line_number
        super().__init__(message)

    def _location(self) -> str | None:
        if not (self.file_path or self.line_number):
            return None
        location_parts = []
        if self.file_path:
            location_parts.append(f"File: {self.file_path}")
        if self.line_number:
            location_parts.append(f"Line: {self.line_number}")
        return ", ".join(location_parts)

    def __str__(self) -> str:
        """Format the error message with location and suggestion."""
        msg = super().__str__()

        location = self._location()
        if location:
            msg += f"\n\n📍 Location: {location}"

        if self.suggestion:
            msg += f"\n\n💡 Suggestion: {self.suggestion}"
        return msg

    @property
    def error_type(self) -> str:
        """Return the type name for display purposes."""
        return self.__class__.__name__


class ConfigurationError(ImageTestError):
    """Raised when run configuration is invalid.

    This includes malformed YAML, unparseable durations, invalid regular
    expressions, and out-of-range option values.

    Attributes:
        field_path: Optional path to the invalid field (e.g., 'parallel_stagger').
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        field_path: str | None = None,
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
            field_path: Optional path to the invalid configuration field.
        """
        self.field_path = field_path

        if suggestion is None:
            suggestion = self._generate_suggestion(message, field_path)

        super().__init__(message, suggestion, file_path, line_number)

    def _generate_suggestion(self, message: str, field_path: str | None) -> str | None:
        """Generate helpful suggestions based on error message and field."""
        msg_lower = message.lower()

        if "duration" in msg_lower:
            return "Use a Go-style duration such as '60s', '1m30s' or '45m'"

        if "regex" in msg_lower or "regular expression" in msg_lower:
            return "Check the pattern syntax; it is compiled with Python's re module"

        if "required" in msg_lower:
            return f"Add the missing required field{' at ' + field_path if field_path else ''}"

        if "images" in msg_lower:
            return "Pass at least one image with --images, e.g. --images debian-12"

        return None

    def __str__(self) -> str:
        """Format the error message with field path, location and suggestion."""
        msg = self.args[0] if self.args else ""

        if self.field_path:
            msg += f"\n\n📋 Field: {self.field_path}"

        location = self._location()
        if location:
            msg += f"\n\n📍 Location: {location}"

        if self.suggestion:
            msg += f"\n\n💡 Suggestion: {self.suggestion}"
        return msg


class WorkflowBuildError(ImageTestError):
    """Raised when a test workflow cannot be constructed.

    Setup errors abort construction of the workflow they occur in. The
    command line treats any of them as fatal before execution begins.

    Attributes:
        workflow_name: Optional name of the workflow being built.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        workflow_name: str | None = None,
    ) -> None:
        """Initialize a WorkflowBuildError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            file_path: Optional path to the file where the error occurred.
            line_number: Optional line number where the error occurred.
            workflow_name: Optional name of the workflow being built.
        """
        self.workflow_name = workflow_name
        super().__init__(message, suggestion, file_path, line_number)


class PreconditionError(WorkflowBuildError):
    """Raised when a VM mutation is called before its prerequisite.

    For example, adding alias IP ranges before a custom network was
    attached to the VM.
    """


class ResourceReferenceError(WorkflowBuildError):
    """Raised for malformed resource references.

    Examples are a zone string without a region separator or a
    subnetwork whose region cannot be derived.
    """


class ImageResolutionError(ImageTestError):
    """Raised when an image short name cannot be mapped to a project."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        image: str | None = None,
    ) -> None:
        """Initialize an ImageResolutionError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            image: Optional image name that failed to resolve.
        """
        self.image = image
        if suggestion is None:
            suggestion = (
                "Pass a full image URL (projects/<project>/global/images/<name>) "
                "or a name with a known distribution prefix"
            )
        super().__init__(message, suggestion)


class ExecutionError(ImageTestError):
    """Raised when the external engine fails to run a workflow.

    The scheduler catches these per workflow and records them as errors
    on that workflow's result; other workflows keep running.

    Attributes:
        workflow_name: Optional name of the workflow that failed.
        exit_code: Optional exit code of the engine process.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        workflow_name: str | None = None,
        exit_code: int | None = None,
    ) -> None:
        """Initialize an ExecutionError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            workflow_name: Optional name of the workflow that failed.
            exit_code: Optional exit code of the engine process.
        """
        self.workflow_name = workflow_name
        self.exit_code = exit_code
        super().__init__(message, suggestion)


class ResultParseError(ImageTestError):
    """Raised when a test log cannot be parsed.

    Scoped to the workflow whose log was malformed.
    """


class ArtifactError(ImageTestError):
    """Raised when an artifact cannot be listed or copied."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        object_path: str | None = None,
    ) -> None:
        """Initialize an ArtifactError.

        Args:
            message: The error message describing what went wrong.
            suggestion: Optional advice for resolving the error.
            object_path: Optional path of the object that failed.
        """
        self.object_path = object_path
        super().__init__(message, suggestion)
