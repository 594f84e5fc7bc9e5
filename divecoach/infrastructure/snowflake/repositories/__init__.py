"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .dive_logs import DiveLogFilter, DiveLogNotFoundError, DiveLogRepository, SnowflakeConfig

__all__ = ["DiveLogFilter", "DiveLogNotFoundError", "DiveLogRepository", "SnowflakeConfig"]
