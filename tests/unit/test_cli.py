"""Tests for cuesync CLI commands."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from cuesync import cli
from cuesync.cli import app
from cuesync.engine import CuesyncEngine
from cuesync.observability import tracing
from cuesync.storage.sync_store import SyncStore

runner = CliRunner()


class TestCLICommands:
    """Test suite for informational commands."""

    def test_version_command(self) -> None:
        """Test version command."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "Cuesync version: 0.1.0" in result.stdout

    def test_info_command(self) -> None:
        """Test info command."""
        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "context extraction and cross-platform sync engine" in result.stdout
        assert "Platforms: chatgpt, claude, gemini" in result.stdout
        assert "Queue: batches of 5" in result.stdout
        assert '"keyword_preservation": 25.0' in result.stdout

    def test_platforms_command(self) -> None:
        """Test platforms command lists capabilities."""
        result = runner.invoke(app, ["platforms"])

        assert result.exit_code == 0
        assert "Configured platforms:" in result.stdout
        assert "claude-3-sonnet-20240229 (anthropic API)" in result.stdout
        assert "CLAUDE_API_KEY" in result.stdout
        assert "Capabilities: code, multimodal, creative" in result.stdout

    def test_config_file_option(self, tmp_path) -> None:
        path = tmp_path / "cuesync.yaml"
        path.write_text("environment: staging\n")

        result = runner.invoke(app, ["info", "--config", str(path)])

        assert "Environment: staging" in result.stdout


class TestEngineCommands:
    """Test suite for commands that run the engine."""

    @pytest.fixture
    def use_fake_engine(self, monkeypatch, fake_client_cls, fake_completion_cls):
        """Route commands to an engine with scripted collaborators."""
        replies: dict[str, object] = {}

        def _create_engine(config):
            clients = {
                name: fake_client_cls(replies.get(name, fake_client_cls().reply))
                for name in ("chatgpt", "claude", "gemini")
            }
            return CuesyncEngine.from_config(
                config, clients=clients, completion=fake_completion_cls()
            )

        monkeypatch.setattr(cli, "create_engine", _create_engine)
        return replies

    def test_extract_command(self, use_fake_engine) -> None:
        """Test extract prints the capsule."""
        result = runner.invoke(app, ["extract", "How do I cache API responses?", "-s", "claude"])

        assert result.exit_code == 0
        assert '"source_platform": "claude"' in result.stdout
        assert '"primary_topic": "API caching"' in result.stdout

    def test_sync_command(self, use_fake_engine) -> None:
        """Test sync prints one line per target."""
        result = runner.invoke(
            app, ["sync", "How do I cache API responses?", "-a", "Use an LRU cache."]
        )

        assert result.exit_code == 0
        assert ": synced" in result.stdout
        assert "✅ claude: score" in result.stdout
        assert "✅ gemini: score" in result.stdout

    def test_sync_command_partial(self, use_fake_engine) -> None:
        use_fake_engine["gemini"] = RuntimeError("upstream timed out")

        result = runner.invoke(app, ["sync", "How do I cache API responses?"])

        assert result.exit_code == 0
        assert ": partial" in result.stdout
        assert "❌ gemini: TIMEOUT_ERROR" in result.stdout

    def test_sync_command_failed(self, use_fake_engine) -> None:
        """Test a fully failed sync exits with code 2."""
        use_fake_engine["claude"] = RuntimeError("boom")
        use_fake_engine["gemini"] = RuntimeError("boom")

        result = runner.invoke(app, ["sync", "How do I cache API responses?"])

        assert result.exit_code == 2
        assert ": failed" in result.stdout

    def test_sync_command_metrics(self, use_fake_engine) -> None:
        """Test --metrics prints the Prometheus exposition."""
        result = runner.invoke(app, ["sync", "How do I cache API responses?", "--metrics"])

        assert result.exit_code == 0
        assert "cuesync_sync_attempts_total" in result.stdout
        assert 'platform="claude"' in result.stdout

    def test_trace_option(self, use_fake_engine, monkeypatch) -> None:
        """Test --trace sets up and shuts down console telemetry."""
        calls: list[object] = []
        monkeypatch.setattr(
            tracing, "setup_telemetry", lambda **kwargs: calls.append(kwargs)
        )
        monkeypatch.setattr(tracing, "shutdown_telemetry", lambda: calls.append("shutdown"))

        result = runner.invoke(app, ["analytics", "--trace"])

        assert result.exit_code == 0
        assert calls[0]["enable_console_export"] is True
        assert calls[0]["service_name"] == "cuesync-cli"
        assert calls[-1] == "shutdown"

    def test_analytics_command(self, use_fake_engine) -> None:
        result = runner.invoke(app, ["analytics", "--range", "hour"])

        assert result.exit_code == 0
        assert '"time_range": "hour"' in result.stdout
        assert '"total_attempts": 0' in result.stdout

    def test_store_failure_exits_with_error(self, monkeypatch, tmp_path, fake_client_cls) -> None:
        """Test engine errors are reported instead of raising."""
        broken_path = tmp_path / "missing" / "dir" / "sync.duckdb"

        def _create_engine(config):
            return CuesyncEngine.from_config(
                config, clients={"claude": fake_client_cls()}, store=SyncStore(broken_path)
            )

        monkeypatch.setattr(cli, "create_engine", _create_engine)

        result = runner.invoke(app, ["analytics"])

        assert result.exit_code == 1
        assert "Cannot open sync store" in result.output
