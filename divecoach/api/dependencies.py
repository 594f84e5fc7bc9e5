"""
Request-scoped providers for the DiveCoach routes.

Auth checks, the diver id, the coach and the dive log repository are all
resolved here. Routes never build their own repository or coach, so
tests can swap either through app.dependency_overrides.
"""

import logging
from typing import Annotated, Generator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.coaching.coach import DiveCoach
from ..core.identity import normalize_user_id
from ..infrastructure.anthropic.client import create_anthropic_client
from ..infrastructure.snowflake.client import MockSnowflakeConnection, create_snowflake_connection
from ..infrastructure.snowflake.repositories.dive_logs import DiveLogRepository, SnowflakeConfig

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Global mock instance (shared across requests so data persists)
_mock_snowflake_connection: Optional[MockSnowflakeConnection] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Check X-API-Key against the configured keys.

    Missing and unknown keys both get 403.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Rejected unknown API key",
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def get_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> UUID:
    """
    Resolve the diver from the X-User-Id header.

    Raises 401 when the header is missing or blank.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User identifier required. Provide X-User-Id header.",
        )
    return normalize_user_id(x_user_id)


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_dive_coach(
    settings: Annotated[Settings, Depends(get_settings)],
) -> DiveCoach:
    """
    Provide DiveCoach backed by Claude.

    Raises 503 when no Anthropic key is configured, since only the
    coaching routes need one.
    """
    if not settings.anthropic_api_key:
        logger.error("Coaching requested without ANTHROPIC_API_KEY")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Coaching is not configured on this server",
        )

    llm_client = create_anthropic_client(
        api_key=settings.anthropic_api_key,
        model=settings.anthropic_model,
        max_tokens=settings.anthropic_max_tokens,
        temperature=settings.anthropic_temperature,
    )

    return DiveCoach(llm_client=llm_client)


def _snowflake_config(settings: Settings) -> SnowflakeConfig:
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


def get_dive_log_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[DiveLogRepository, None, None]:
    """
    Provide DiveLogRepository with database connection.

    A generator, so FastAPI closes the real connection after the request.
    In mock mode the same in-memory connection is reused across requests
    so that data persists for the life of the process.
    """
    global _mock_snowflake_connection

    if settings.snowflake_mock_mode:
        if _mock_snowflake_connection is None:
            _mock_snowflake_connection = MockSnowflakeConnection()
            logger.info("Created shared mock Snowflake connection")

        yield DiveLogRepository(_mock_snowflake_connection)
    else:
        with create_snowflake_connection(config=_snowflake_config(settings)) as conn:
            logger.debug("Created DiveLogRepository with Snowflake connection")
            yield DiveLogRepository(conn)


def reset_mock_connection() -> None:
    """Drop the shared in-memory database (for tests)."""
    global _mock_snowflake_connection
    _mock_snowflake_connection = None


# ---------------------------------------------------------------------------
# Annotated Aliases
# ---------------------------------------------------------------------------

AuthenticatedKey = Annotated[str, Depends(verify_api_key)]
UserIdDep = Annotated[UUID, Depends(get_user_id)]
DiveCoachDep = Annotated[DiveCoach, Depends(get_dive_coach)]
DiveLogRepositoryDep = Annotated[DiveLogRepository, Depends(get_dive_log_repository)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
