"""Tests for the alert store engine factory and database check."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from rainalert.core.config import Settings
from rainalert.core.database import check_database, create_engine


class _SessionContext:
    def __init__(self, session: AsyncMock) -> None:
        self._session = session

    async def __aenter__(self) -> AsyncMock:
        return self._session

    async def __aexit__(self, *exc: Any) -> None:
        return None


class TestCreateEngine:
    def test_pool_and_statements_bounded_by_evaluation_timeout(self, test_settings: Settings) -> None:
        settings = test_settings.model_copy(
            update={"evaluation_timeout_seconds": 2.5, "database_pool_size": 3, "database_max_overflow": 1}
        )

        with patch("rainalert.core.database.create_async_engine") as factory:
            engine, session_factory = create_engine(settings)

        assert engine is factory.return_value
        kwargs = factory.call_args.kwargs
        assert factory.call_args.args == (settings.database_url,)
        assert kwargs["pool_timeout"] == 2.5
        assert kwargs["connect_args"] == {"command_timeout": 2.5}
        assert kwargs["pool_size"] == 3
        assert kwargs["max_overflow"] == 1
        assert session_factory.kw["expire_on_commit"] is False


class TestCheckDatabase:
    @pytest.mark.asyncio
    async def test_reachable_database(self, mock_db_session: AsyncMock) -> None:
        factory = MagicMock(return_value=_SessionContext(mock_db_session))

        assert await check_database(factory) is True
        mock_db_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unreachable_database(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        factory = MagicMock(return_value=_SessionContext(mock_db_session))

        assert await check_database(factory) is False
