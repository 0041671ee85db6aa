# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Entry point for running imagetest as a module.

Usage:
    python -m imagetest
"""

from imagetest.cli.app import app


def main() -> None:
    """Main entry point for the imagetest CLI."""
    app()


if __name__ == "__main__":
    main()
