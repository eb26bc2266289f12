"""Test suite for the maintain-engine package.

This package contains unit and integration tests validating step
configuration, scenario composition, run strategies, the next-steps
protocol, checkpointing and plugin loading.
"""
