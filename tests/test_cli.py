from pathlib import Path

from ivena_mirror import cli
from ivena_mirror.config import DEFAULT_PORT
from ivena_mirror.errors import TargetNotFound


def test_serve_is_the_default_command(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    args = cli.parse_args([])
    assert args.command == "serve"
    assert args.port == DEFAULT_PORT
    assert args.host == "0.0.0.0"


def test_options_without_command_go_to_serve(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    args = cli.parse_args(["--port", "8080", "--no-download"])
    assert args.command == "serve"
    assert args.port == 8080
    assert args.no_download


def test_port_defaults_to_environment(monkeypatch):
    monkeypatch.setenv("PORT", "5123")
    assert cli.parse_args(["serve"]).port == 5123

    monkeypatch.setenv("PORT", "not-a-number")
    assert cli.parse_args(["serve"]).port == DEFAULT_PORT


def test_build_config_from_capture_arguments(tmp_path, monkeypatch):
    monkeypatch.delenv("CHROMIUM_PATH", raising=False)
    args = cli.parse_args(
        [
            "capture",
            "--public-dir",
            str(tmp_path / "pub"),
            "--timeout",
            "12.5",
            "--headed",
            "--output",
            str(tmp_path / "out.html"),
        ]
    )
    config = cli.build_config(args)

    assert args.command == "capture"
    assert config.public_dir == tmp_path / "pub"
    assert config.assets_dir == tmp_path / "pub" / "assets"
    assert config.navigation_timeout == 12.5
    assert config.settle_delay == 1.0
    assert config.headless is False
    assert config.download_assets is True
    assert config.executable_path is None


def test_executable_path_from_environment(monkeypatch):
    monkeypatch.setenv("CHROMIUM_PATH", "/opt/chromium/chrome")
    args = cli.parse_args(["capture"])
    assert cli.build_config(args).executable_path == Path("/opt/chromium/chrome")


def test_capture_writes_html(tmp_path, monkeypatch):
    async def fake_capture(config):
        return "<html>captured</html>"

    monkeypatch.setattr(cli, "_capture_once", fake_capture)
    output = tmp_path / "out" / "report.html"

    status = cli.main(
        [
            "capture",
            "--public-dir",
            str(tmp_path / "pub"),
            "--profile-dir",
            str(tmp_path / "profile"),
            "--output",
            str(output),
        ]
    )

    assert status == 0
    assert output.read_text(encoding="utf-8") == "<html>captured</html>"


def test_capture_failure_exits_non_zero(tmp_path, monkeypatch):
    async def fake_capture(config):
        raise TargetNotFound("Menu entry 'innere medizin' not found!")

    monkeypatch.setattr(cli, "_capture_once", fake_capture)

    status = cli.main(
        [
            "capture",
            "--public-dir",
            str(tmp_path / "pub"),
            "--profile-dir",
            str(tmp_path / "profile"),
        ]
    )

    assert status == 1


def test_serve_runs_uvicorn(tmp_path, monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    seen = {}

    def fake_run(app, host, port, log_level):
        seen.update(app=app, host=host, port=port, log_level=log_level)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)

    cli.main(["serve", "--public-dir", str(tmp_path / "pub"), "--port", "4000"])

    assert seen["port"] == 4000
    assert seen["log_level"] == "info"
    assert seen["app"].state.config.public_dir == tmp_path / "pub"


def test_wait_sets_quiet_period():
    args = cli.parse_args(["capture", "--wait", "2.5"])
    assert cli.build_config(args).settle_delay == 2.5
