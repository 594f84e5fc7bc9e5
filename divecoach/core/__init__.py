"""
Core business logic for freediving coaching.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns, so every rule can be tested with plain
values.
"""
