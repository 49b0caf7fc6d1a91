"""
Tests for the CLI interface.

This module tests the command-line interface functionality including
argument parsing, version handling, relaying data and error cases.
"""

import os
import signal
import subprocess
import sys
import tomllib
from pathlib import Path

import pytest
from click.testing import CliRunner

from fifostream.cli import main
from fifostream.signals import default_registry

PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep pipe settings from the caller's environment out of the tests."""
    for name in ("PATH", "TMP_DIR", "PIPE_NAME", "HIGH_WATER_MARK", "ENCODING"):
        monkeypatch.delenv(f"FIFOSTREAM_{name}", raising=False)
    yield
    default_registry.uninstall()


class TestCliVersion:
    """Test CLI version command functionality."""

    def test_version_matches_pyproject(self):
        """Test that __version__ matches pyproject.toml version."""
        with open(PROJECT_ROOT / "pyproject.toml", "rb") as f:
            pyproject = tomllib.load(f)
        expected_version = pyproject["project"]["version"]

        from fifostream import __version__

        assert __version__ == expected_version

    def test_version_option_output_format(self):
        """Test that --version outputs correct format."""
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert result.output.strip() == "fifostream version 1.0.0"

    def test_version_with_other_options(self):
        """Test that --version works with other global options."""
        runner = CliRunner()
        result = runner.invoke(main, ["--verbose", "--version"])

        assert result.exit_code == 0
        assert "fifostream version 1.0.0" in result.output

    def test_version_integration(self):
        """Test version through the module entry point."""
        env = dict(os.environ, PYTHONPATH=str(PROJECT_ROOT / "src"))
        result = subprocess.run(
            [sys.executable, "-m", "fifostream.cli", "--version"],
            capture_output=True,
            text=True,
            env=env,
        )

        assert result.returncode == 0
        assert "fifostream version 1.0.0" in result.stdout
        assert result.stderr == ""


class TestCliBasic:
    """Test basic CLI functionality."""

    def test_help_lists_commands(self):
        runner = CliRunner()
        result = runner.invoke(main, ["-h"])

        assert result.exit_code == 0
        assert "relay" in result.output
        assert "path" in result.output
        assert "Show version and exit" in result.output

    def test_unknown_command(self):
        runner = CliRunner()
        result = runner.invoke(main, ["bogus"])

        assert result.exit_code != 0
        assert "No such command" in result.output


class TestCliPath:
    """Test the path command."""

    def test_named_path(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(
            main, ["path", "--tmp-dir", str(temp_dir / "x"), "--name", "p1"]
        )

        assert result.exit_code == 0
        assert result.output.strip() == str(temp_dir / "x" / "p1")
        assert not (temp_dir / "x").exists(), "Resolving a path must not touch disk"

    def test_explicit_path_wins(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(
            main, ["path", "--path", "relative/fifo", "--name", "ignored"]
        )

        assert result.exit_code == 0
        assert result.output.strip() == "relative/fifo"

    def test_environment_defaults(self, monkeypatch, temp_dir):
        monkeypatch.setenv("FIFOSTREAM_TMP_DIR", str(temp_dir))
        monkeypatch.setenv("FIFOSTREAM_PIPE_NAME", "fromenv")

        runner = CliRunner()
        result = runner.invoke(main, ["path"])

        assert result.output.strip() == str(temp_dir / "fromenv")

    def test_invalid_name(self):
        runner = CliRunner()
        result = runner.invoke(main, ["path", "--name", "a/b"])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestCliRelay:
    """Test the relay command."""

    def test_relay_copies_input(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["-q", "relay", "--tmp-dir", str(temp_dir), "--name", "relay"],
            input=b"hello world",
        )

        assert result.exit_code == 0, result.output
        assert result.stdout_bytes == b"hello world"
        assert not (temp_dir / "relay").exists(), "Pipe should be removed after relay"

    def test_relay_small_chunks(self, temp_dir):
        payload = bytes(range(256)) * 64
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["-q", "relay", "--tmp-dir", str(temp_dir), "--chunk-size", "100"],
            input=payload,
        )

        assert result.exit_code == 0, result.output
        assert result.stdout_bytes == payload
        assert list(temp_dir.iterdir()) == []

    def test_relay_empty_input(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(
            main, ["-q", "relay", "--tmp-dir", str(temp_dir)], input=b""
        )

        assert result.exit_code == 0, result.output
        assert result.stdout_bytes == b""

    def test_relay_rejects_regular_file(self, temp_dir):
        target = temp_dir / "plain"
        target.write_text("keep")

        runner = CliRunner()
        result = runner.invoke(main, ["-q", "relay", "--path", str(target)], input=b"x")

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert target.read_text() == "keep"

    def test_relay_rejects_bad_chunk_size(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(
            main, ["relay", "--tmp-dir", str(temp_dir), "--chunk-size", "0"]
        )

        assert result.exit_code == 2


class TestCliRelayProcess:
    """Test the relay command in a separate process with real stdin pipes."""

    def _command(self, *args):
        return [sys.executable, "-m", "fifostream.cli", "-q", "relay", *args]

    def _env(self):
        return dict(os.environ, PYTHONPATH=str(PROJECT_ROOT / "src"))

    def test_piped_stdin(self, temp_dir):
        payload = os.urandom(200 * 1024)
        result = subprocess.run(
            self._command("--tmp-dir", str(temp_dir), "--chunk-size", "4096"),
            input=payload,
            capture_output=True,
            env=self._env(),
            timeout=30,
        )

        assert result.returncode == 0, result.stderr
        assert result.stdout == payload
        assert list(temp_dir.iterdir()) == []

    def test_interrupt_with_open_stdin(self, temp_dir):
        fifo_path = temp_dir / "interrupted"
        proc = subprocess.Popen(
            self._command("--tmp-dir", str(temp_dir), "--name", "interrupted", "--show-path"),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=self._env(),
        )
        try:
            shown = proc.stderr.readline().decode().strip()
            assert shown == str(fifo_path)
            assert fifo_path.exists()

            proc.send_signal(signal.SIGINT)
            returncode = proc.wait(timeout=10)

            assert returncode == 130
            assert not fifo_path.exists()
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            proc.stdin.close()
            proc.stdout.close()
            proc.stderr.close()
