"""Tests for the command line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from adaptive_ai.cli.app import cli
from adaptive_ai.llm.base import AllProvidersUnavailable
from adaptive_ai.models.llm_models import CompletionResponse


def fake_service(result=None, error=None):
    service = MagicMock()
    service.generate_completion = AsyncMock(return_value=result, side_effect=error)
    service.shutdown = AsyncMock()
    return service


class TestCLI:
    """Test suite for the adaptive-ai CLI."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_ask_prints_response(self):
        """Test ask renders the answer and its metadata."""
        response = CompletionResponse(
            request_id="r1",
            content="Almonds and apples.",
            model="gpt-4o-mini",
            provider="openai",
            complexity="low",
            processing_time_ms=42,
        )
        service = fake_service(result=response)

        with patch("adaptive_ai.services.completion_service.AdaptiveAIService", return_value=service):
            result = self.runner.invoke(cli, ["ask", "What are some healthy snacks?"])

        assert result.exit_code == 0, result.output
        assert "Almonds and apples." in result.output
        assert "gpt-4o-mini" in result.output

        request = service.generate_completion.call_args.args[0]
        assert request.priority == "critical"
        assert request.messages[0].content == "What are some healthy snacks?"
        service.shutdown.assert_awaited_once()

    def test_ask_reports_errors(self):
        """Test service errors exit non-zero with the error code."""
        service = fake_service(error=AllProvidersUnavailable("nothing configured"))

        with patch("adaptive_ai.services.completion_service.AdaptiveAIService", return_value=service):
            result = self.runner.invoke(cli, ["ask", "hello"])

        assert result.exit_code == 1
        assert "providers_unavailable" in result.output

    def test_serve_runs_uvicorn(self, monkeypatch):
        """Test serve builds the app and hands it to uvicorn."""
        monkeypatch.setenv("LOG_FILE", "")
        app = object()

        with patch("adaptive_ai.api.app.create_app", return_value=app) as create_app, \
                patch("uvicorn.run") as run:
            result = self.runner.invoke(cli, ["serve", "--port", "5999"])

        assert result.exit_code == 0, result.output
        create_app.assert_called_once()
        assert run.call_args.args[0] is app
        assert run.call_args.kwargs["port"] == 5999
