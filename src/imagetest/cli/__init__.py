# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""CLI module for imagetest."""

from imagetest.cli.app import app

__all__ = ["app"]
