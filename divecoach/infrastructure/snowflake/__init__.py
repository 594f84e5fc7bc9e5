"""Snowflake persistence: connections and repositories."""
