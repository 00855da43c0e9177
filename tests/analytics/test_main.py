"""Tests for the command-line entry point."""

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from analytics import __main__ as cli
from config.config import get_config


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "kafka:\n"
        "  bootstrap_servers: kafka:9092\n"
        "  concurrency: 2\n"
        "api:\n"
        "  read_port: 9091\n"
        "  ingest_port: 9092\n"
    )
    return path


class TestParseArgs:
    def test_defaults(self):
        args = cli.parse_args(["consumer"])

        assert args.command == "consumer"
        assert args.config is None
        assert args.concurrency is None
        assert args.json_logs is False

    def test_options(self):
        args = cli.parse_args(
            ["api", "--config", "custom.yaml", "--log-level", "DEBUG", "--json-logs"]
        )

        assert args.config == Path("custom.yaml")
        assert args.log_level == "DEBUG"
        assert args.json_logs is True

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["replay"])


class TestMain:
    def test_invalid_config_exits_2(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("kafka:\n  concurrency: 0\n")

        assert cli.main(["consumer", "--config", str(path)]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_invalid_concurrency_exits_2(self, config_file):
        assert cli.main(["consumer", "--config", str(config_file), "--concurrency", "0"]) == 2

    def test_invalid_log_level_exits_2(self, config_file, capsys):
        assert cli.main(["api", "--config", str(config_file), "--log-level", "chatty"]) == 2
        assert "Unknown log level" in capsys.readouterr().err

    def test_init_db(self, config_file):
        with patch.object(cli, "init_storage", new=AsyncMock()) as init_storage:
            assert cli.main(["init-db", "--config", str(config_file)]) == 0

        init_storage.assert_awaited_once()
        assert get_config().kafka.bootstrap_servers == "kafka:9092"

    def test_consumer(self, config_file):
        with patch.object(cli, "run_consumer", new=AsyncMock()) as run_consumer, patch.object(
            cli, "start_metrics_server"
        ) as metrics:
            assert cli.main(["consumer", "--config", str(config_file), "--concurrency", "4"]) == 0

        run_consumer.assert_awaited_once()
        assert run_consumer.await_args.args[1] == 4
        metrics.assert_called_once_with(8000)

    @pytest.mark.parametrize("command,port", [("api", 9091), ("ingest", 9092)])
    def test_serves_http_apis(self, config_file, command, port):
        with patch.object(cli, "serve") as serve, patch.object(cli, "start_metrics_server"):
            assert cli.main([command, "--config", str(config_file)]) == 0

        app, host, served_port = serve.call_args.args
        assert host == "0.0.0.0"
        assert served_port == port
        assert app.title.startswith("Analytics")


async def test_init_storage_creates_schema_and_index():
    sinks = AsyncMock()
    sinks.search.ensure_index.return_value = True

    with patch.object(cli, "build_sinks", return_value=sinks):
        await cli.init_storage(get_config())

    sinks.durable.create_schema.assert_awaited_once()
    sinks.search.ensure_index.assert_awaited_once()
    sinks.close.assert_awaited_once()
