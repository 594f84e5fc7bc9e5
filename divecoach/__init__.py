"""
DiveCoach - freediving training logs with rule-based coaching.

This package contains the complete application:
- core: Framework-agnostic diagnostics, pattern analysis and coaching
- infrastructure: External service integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
