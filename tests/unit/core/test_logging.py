"""Unit tests for packsync.core.logging.

Tests structured logging configuration and logger creation.
"""

from unittest.mock import MagicMock, patch

import structlog

from packsync.core.logging import add_service_context, bind_context, configure_logging, get_logger


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_development(self) -> None:
        with patch("packsync.core.logging.get_settings") as mock_settings:
            mock_settings.return_value.environment = "development"
            mock_settings.return_value.log_level = "DEBUG"

            with patch("packsync.core.logging.structlog.configure") as mock_configure:
                configure_logging()

                mock_configure.assert_called_once()
                processors = mock_configure.call_args.kwargs["processors"]
                assert add_service_context in processors

    def test_configure_logging_production_renders_json(self) -> None:
        with patch("packsync.core.logging.get_settings") as mock_settings:
            mock_settings.return_value.environment = "production"
            mock_settings.return_value.log_level = "INFO"

            with patch("packsync.core.logging.structlog.configure") as mock_configure:
                configure_logging()

                processors = mock_configure.call_args.kwargs["processors"]
                assert type(processors[-1]).__name__ == "JSONRenderer"


class TestAddServiceContext:
    """Tests for the service context processor."""

    def test_adds_service_and_environment(self) -> None:
        with patch("packsync.core.logging.get_settings") as mock_settings:
            mock_settings.return_value.service_name = "packsync"
            mock_settings.return_value.environment = "test"

            event = add_service_context(MagicMock(), "info", {"event": "Cache hit"})

        assert event == {"event": "Cache hit", "service": "packsync", "environment": "test"}


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_with_name(self) -> None:
        with patch("packsync.core.logging.structlog.get_logger") as mock_get:
            mock_logger = MagicMock()
            mock_get.return_value = mock_logger

            logger = get_logger("packsync.sync")

            mock_get.assert_called_once_with("packsync.sync")
            assert logger is mock_logger

    def test_get_logger_is_usable(self) -> None:
        logger = get_logger(__name__)
        logger.debug("Cache miss", key="packsync-cache:github:x")


class TestBindContext:
    """Tests for bind_context."""

    def test_fields_bound_inside_block_only(self) -> None:
        with bind_context(session_id="s-1", repo="owner/pack"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["session_id"] == "s-1"
            assert bound["repo"] == "owner/pack"

        assert "session_id" not in structlog.contextvars.get_contextvars()
        assert "repo" not in structlog.contextvars.get_contextvars()

    def test_nested_blocks_restore_outer_fields(self) -> None:
        with bind_context(operation="update"):
            with bind_context(operation="publish", uuid="u-1"):
                assert structlog.contextvars.get_contextvars()["operation"] == "publish"
            bound = structlog.contextvars.get_contextvars()
            assert bound["operation"] == "update"
            assert "uuid" not in bound

    def test_fields_merged_into_events(self) -> None:
        with bind_context(session_id="s-1"):
            event = structlog.contextvars.merge_contextvars(MagicMock(), "info", {"event": "Manifest fetched"})

        assert event == {"event": "Manifest fetched", "session_id": "s-1"}
