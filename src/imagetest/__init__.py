# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""imagetest - Orchestrate integration tests against VM images.

For every (test suite, image) pair imagetest builds a dependency graph of
provisioning steps (networks, disks, instances, reboots, quota waits),
hands it to an external workflow engine, runs many graphs with bounded
concurrency, and reduces the resulting ``go test -v`` logs into a JUnit
report.

Example:
    Run the network and imageboot suites against two images::

        $ imagetest run --project my-project --images debian-12,rhel-9 \\
            --filter '^(network|imageboot)$'

    Or build a workflow programmatically::

        from imagetest.graph.workflow import TestWorkflow, WorkflowOptions

        wf = TestWorkflow(WorkflowOptions(
            name="imageboot",
            image="projects/debian-cloud/global/images/family/debian-12",
            project="my-project",
            zone="us-central1-a",
        ))
        vm = wf.create_test_vm("boot")
        vm.reboot()
        vm.run_tests("TestGuestBoot|TestGuestReboot$")

Modules:
    graph: Resource-graph builder, VM/network lifecycle and quota merging.
    engine: Scheduler, execution backends, run context and artifacts.
    results: Test log parsing, suite reduction and JUnit output.
    suites: Test suite registry and built-in suite setups.
    config: Run configuration schema and YAML loading.
    images: Image name resolution and exception matching.
    cli: Command-line interface commands.
    exceptions: Custom exception hierarchy.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
