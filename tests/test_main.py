"""Tests for the command-line entry point."""
from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from quiz_engine.__main__ import _parse_flag, main


class TestParseFlag:
    def test_present(self):
        assert _parse_flag(["--port", "9000"], "--port", "8765") == "9000"

    def test_missing_value(self):
        assert _parse_flag(["--port"], "--port", "8765") == "8765"


class TestCommands:
    def test_serve(self):
        with patch("sys.argv", ["quiz_engine", "serve", "--port", "9001"]), \
             patch("uvicorn.run") as run:
            main()
        run.assert_called_once()
        assert run.call_args.args == ("quiz_engine.app:app",)
        assert run.call_args.kwargs["port"] == 9001
        assert run.call_args.kwargs["host"] == "127.0.0.1"

    def test_strategies(self, tmp_path, capsys):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"default_strategy": "adaptive"}))
        with patch("sys.argv", ["quiz_engine", "strategies"]), \
             patch("quiz_engine.config.CONFIG_PATH", config_path):
            main()
        out = capsys.readouterr().out
        assert "* adaptive" in out
        assert "simple" in out and "no parameters" in out
        assert "penalty_per_second=0.01" in out

    def test_unknown_command(self, capsys):
        with patch("sys.argv", ["quiz_engine", "launch"]), pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1
        assert "Unknown command: launch" in capsys.readouterr().out
