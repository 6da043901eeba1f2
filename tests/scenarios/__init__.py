"""Scenario tests for lampkit-cli.

These tests drive whole operator journeys through the CLI against a
simulated host (see tests/conftest.py). Numbering follows S-01 onwards.
"""
