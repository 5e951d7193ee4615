"""Tests for command dispatch in cftpipe.__main__."""

from __future__ import annotations

import datetime
from unittest.mock import MagicMock, patch

import pytest

from cftpipe import __version__
from cftpipe.__main__ import main
from cftpipe.exceptions import ProviderError
from cftpipe.state import Configuration, StateStore


@pytest.fixture
def state_dir(tmp_path, monkeypatch):
    path = tmp_path / "state"
    monkeypatch.setenv("CFTPIPE_CONFIG_DIR", str(path))
    monkeypatch.setenv("CF_API_TOKEN", "api-tok")
    return path


@pytest.fixture
def saved_config(state_dir):
    config = Configuration(
        domain="example.com",
        zone_id="zone-1",
        tunnel_id="tun-1",
        tunnel_name="cftpipe-1",
        token="run-tok",
        created_at=datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc),
    )
    StateStore(base_dir=state_dir).write_config(config)
    return config


class TestHelp:
    @pytest.mark.parametrize("flag", ["help", "-h", "--help"])
    def test_usage(self, flag, capsys):
        assert main([flag]) == 0
        assert "Usage: cftpipe {setup|run|destroy <slug>|list|status}" in (
            capsys.readouterr().out
        )

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert __version__ in capsys.readouterr().out


class TestUnknownCommand:
    def test_exit_code(self, state_dir, capsys):
        assert main(["frobnicate"]) == 1
        err = capsys.readouterr().err
        assert "ERROR: Unknown command 'frobnicate'" in err
        assert "Usage:" in err


class TestStatusAndList:
    def test_status_without_config(self, state_dir, capsys):
        assert main(["status"]) == 0
        assert capsys.readouterr().out.strip() == "No config"

    def test_status_with_config(self, saved_config, capsys):
        assert main(["status"]) == 0
        assert '"domain": "example.com"' in capsys.readouterr().out

    def test_status_corrupt_config(self, state_dir, capsys):
        state_dir.mkdir()
        (state_dir / "tunnel-config.json").write_text("nope")
        assert main(["status"]) == 1
        assert "not valid JSON" in capsys.readouterr().err

    def test_list_empty(self, state_dir, capsys):
        assert main(["list"]) == 0
        assert capsys.readouterr().out.strip() == "No history"

    def test_status_does_not_need_cloudflared(self, state_dir):
        with patch("cftpipe.commands._check_cloudflared", return_value=None):
            assert main(["status"]) == 0
            assert main(["list"]) == 0


class TestRunDispatch:
    def test_requires_config(self, state_dir, capsys):
        with patch("cftpipe.commands._check_cloudflared", return_value="/bin/cf"):
            assert main(["run", "-p", "8080"]) == 1
        assert "Run setup first" in capsys.readouterr().err

    def test_missing_port_value_exits_1(self, saved_config, capsys):
        assert main(["run", "-p"]) == 1
        assert "expected one argument" in capsys.readouterr().err

    def test_help_returns_0(self, saved_config, capsys):
        assert main(["run", "--help"]) == 0
        assert "cftpipe run" in capsys.readouterr().out

    def test_default_command_is_run(self, saved_config):
        with patch("cftpipe.__main__.run_command", return_value=0) as run:
            assert main([]) == 0
        args, config, store = run.call_args.args
        assert args.port is None
        assert config == saved_config

    def test_passes_loaded_config(self, saved_config):
        with patch("cftpipe.__main__.run_command", return_value=7) as run:
            assert main(["run", "-p", "8080", "-s", "demo"]) == 7
        args, config, _ = run.call_args.args
        assert (args.port, args.slug) == ("8080", "demo")
        assert config == saved_config

    def test_end_to_end(self, saved_config, state_dir):
        client = MagicMock()
        client.find_cname_record.return_value = None
        with (
            patch("cftpipe.commands._check_cloudflared", return_value="/bin/cf"),
            patch("cftpipe.commands.CloudflareClient", return_value=client),
            patch("cftpipe.commands.launch_tunnel", return_value=0) as launch,
        ):
            assert main(["run", "-p", "8080", "-s", "demo"]) == 0
        client.create_cname.assert_called_once_with(
            "zone-1", "demo.example.com", "tun-1.cfargotunnel.com", proxied=True
        )
        launch.assert_called_once_with("run-tok", "8080")
        history = StateStore(base_dir=state_dir).read_history()
        assert [(e.hostname, e.port) for e in history] == [("demo.example.com", "8080")]

    def test_provider_error_exit_code(self, saved_config, capsys):
        client = MagicMock()
        client.find_cname_record.side_effect = ProviderError("GET failed")
        with (
            patch("cftpipe.commands._check_cloudflared", return_value="/bin/cf"),
            patch("cftpipe.commands.CloudflareClient", return_value=client),
        ):
            assert main(["run", "-p", "8080", "-s", "demo"]) == 1
        assert "ERROR: GET failed" in capsys.readouterr().err


class TestDestroyDispatch:
    def test_requires_config(self, state_dir, capsys):
        assert main(["destroy", "demo"]) == 1
        assert "Run setup first" in capsys.readouterr().err

    def test_requires_slug(self, saved_config, capsys):
        with patch("cftpipe.commands._check_cloudflared", return_value="/bin/cf"):
            assert main(["destroy"]) == 1
        assert "Usage: cftpipe destroy <slug>" in capsys.readouterr().err

    def test_decline_tunnel_deletion(self, saved_config):
        client = MagicMock()
        client.find_cname_record.return_value = "rec-1"
        with (
            patch("cftpipe.commands._check_cloudflared", return_value="/bin/cf"),
            patch("cftpipe.commands.CloudflareClient", return_value=client),
            patch("builtins.input", return_value="n"),
        ):
            assert main(["destroy", "demo"]) == 0
        client.delete_dns_record.assert_called_once_with("zone-1", "rec-1")
        client.delete_tunnel.assert_not_called()


class TestSetupDispatch:
    def test_zero_zones(self, state_dir, capsys, monkeypatch):
        monkeypatch.setenv("CF_ACCOUNT_ID", "acc-1")
        client = MagicMock()
        client.list_active_zones.return_value = []
        with (
            patch("cftpipe.commands._check_cloudflared", return_value="/bin/cf"),
            patch("cftpipe.commands.CloudflareClient", return_value=client),
        ):
            assert main(["setup"]) == 1
        assert "No active zones" in capsys.readouterr().err
        assert not (state_dir / "tunnel-config.json").exists()

    def test_missing_token(self, state_dir, monkeypatch, capsys):
        monkeypatch.delenv("CF_API_TOKEN")
        with patch("cftpipe.commands._check_cloudflared", return_value="/bin/cf"):
            assert main(["setup"]) == 1
        assert "CF_API_TOKEN" in capsys.readouterr().err
