"""Conformance test scenarios for idempotent execution.

This package contains end-to-end scenario tests that verify the execution
wrapper behaves correctly against real and scripted record stores. Each
scenario tests a specific aspect of at-most-once execution.
"""
