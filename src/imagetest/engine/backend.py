# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Execution backends.

A backend hands a finished workflow document to the external workflow
engine and waits for it to complete. ``CommandBackend`` runs the engine
binary as a subprocess; ``MockBackend`` calls a function instead, for
tests and dry runs.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from imagetest.exceptions import ExecutionError

if TYPE_CHECKING:
    from imagetest.engine.artifacts import ObjectStore
    from imagetest.graph.workflow import TestWorkflow

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_BINARY = "daisy"

# Lines of engine stderr kept in error messages
STDERR_TAIL_LINES = 20


class ExecutionBackend(ABC):
    """Runs workflow documents on the workflow engine."""

    @abstractmethod
    async def run(self, workflow: TestWorkflow) -> None:
        """Execute a workflow and wait for it to finish.

        Args:
            workflow: The workflow to execute.

        Raises:
            ExecutionError: If the engine reports a failure.
        """

    @abstractmethod
    async def validate(self, workflow: TestWorkflow) -> None:
        """Ask the engine to validate a workflow without running it.

        Raises:
            ExecutionError: If the workflow is rejected.
        """

    async def close(self) -> None:
        """Release any resources held by the backend."""

    async def __aenter__(self) -> ExecutionBackend:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit - closes the backend."""
        await self.close()


def _tail(text: str, lines: int = STDERR_TAIL_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class CommandBackend(ExecutionBackend):
    """Backend that runs the workflow engine command line tool.

    Each workflow document is written to a temporary file that is passed
    to the engine as its last argument.

    Example:
        >>> async with CommandBackend("daisy") as backend:
        ...     await backend.run(workflow)
    """

    def __init__(
        self,
        binary: str = DEFAULT_ENGINE_BINARY,
        work_dir: str | Path | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            binary: Engine executable name or path.
            work_dir: Directory for workflow documents. A temporary
                directory is created and removed on close when omitted.
        """
        self.binary = binary
        self._tempdir: tempfile.TemporaryDirectory[str] | None = None
        if work_dir is None:
            self._tempdir = tempfile.TemporaryDirectory(prefix="imagetest-")
            work_dir = self._tempdir.name
        self.work_dir = Path(work_dir)

    def command(self, workflow: TestWorkflow, document: Path, validate: bool = False) -> list[str]:
        """Build the engine command line for a workflow document."""
        args = [self.binary, "-project", workflow.project, "-zone", workflow.zone]
        if validate:
            args.append("-validate")
        args.append(str(document))
        return args

    def _write_document(self, workflow: TestWorkflow) -> Path:
        path = self.work_dir / f"{workflow.document_name}-{workflow.image.name}.json"
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            return workflow.write_document(path)
        except OSError as e:
            raise ExecutionError(
                f"Failed to write workflow document {path}: {e}",
                suggestion="Check that the work directory is writable and has free space",
                workflow_name=workflow.name,
            ) from e

    async def _invoke(self, workflow: TestWorkflow, validate: bool) -> None:
        document = self._write_document(workflow)
        args = self.command(workflow, document, validate=validate)
        logger.debug(f"Running {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExecutionError(
                f"Failed to start workflow engine '{self.binary}': {e}",
                suggestion="Install the engine or pass its path with --engine-binary",
                workflow_name=workflow.name,
            ) from e

        stdout, stderr = await process.communicate()
        if stdout:
            logger.debug(f"{workflow.name} engine output:\n{stdout.decode(errors='replace')}")
        if process.returncode != 0:
            tail = _tail(stderr.decode(errors="replace"))
            action = "validation" if validate else "run"
            raise ExecutionError(
                f"Workflow {action} of '{workflow.name}' on {workflow.image.name} failed "
                f"with exit code {process.returncode}:\n{tail}",
                workflow_name=workflow.name,
                exit_code=process.returncode,
            )

    async def run(self, workflow: TestWorkflow) -> None:
        await self._invoke(workflow, validate=False)

    async def validate(self, workflow: TestWorkflow) -> None:
        await self._invoke(workflow, validate=True)

    async def close(self) -> None:
        if self._tempdir is not None:
            self._tempdir.cleanup()
            self._tempdir = None


class MockBackend(ExecutionBackend):
    """Backend that calls a function instead of running the engine.

    The handler receives each workflow. Returning a string uploads it as
    the test log of every VM in the workflow; raising ``ExecutionError``
    simulates an engine failure.

    Attributes:
        runs: Workflows passed to ``run``, in call order.
        validated: Workflows passed to ``validate``, in call order.
    """

    def __init__(
        self,
        mock_handler: Callable[[TestWorkflow], str | None] | None = None,
        store: ObjectStore | None = None,
    ) -> None:
        self.mock_handler = mock_handler
        self.store = store
        self.runs: list[TestWorkflow] = []
        self.validated: list[TestWorkflow] = []
        self.closed = False

    async def run(self, workflow: TestWorkflow) -> None:
        self.runs.append(workflow)
        if self.mock_handler is None:
            return
        logs = self.mock_handler(workflow)
        if logs is None or self.store is None:
            return
        for vm_name in workflow.vms:
            self.store.write(workflow.results_url_for_vm(vm_name), logs.encode("utf-8"))

    async def validate(self, workflow: TestWorkflow) -> None:
        self.validated.append(workflow)

    async def close(self) -> None:
        self.closed = True
