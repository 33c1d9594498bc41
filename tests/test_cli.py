from pathlib import Path

from click.testing import CliRunner

from lantern import __version__
from lantern.cli import cli
from lantern.content import Site
from lantern.errors import BuildError, ConfigError


def test_cli_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_build_real_project(tmp_path):
    (tmp_path / "srcs").mkdir()
    (tmp_path / "siteConfig.yml").write_text("title: Demo\n", encoding="utf-8")
    (tmp_path / "srcs" / "hello.md").write_text("---\nlayout: post\ntitle: Hello\n---\nHi\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["build", str(tmp_path)], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 1 posts and 0 pages" in result.output
    assert (tmp_path / "docs" / "hello.html").read_text(encoding="utf-8") == "<p>Hi</p>\n"


def test_cli_build_config_error(tmp_path):
    result = CliRunner().invoke(cli, ["build", str(tmp_path)])
    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_cli_build_reports_file_errors(monkeypatch, tmp_path):
    def fake_build_site(work_dir, config_path=None):
        raise BuildError(tmp_path / "srcs" / "bad.md", "Front matter error: nope")

    monkeypatch.setattr("lantern.build.build_site", fake_build_site)
    result = CliRunner().invoke(cli, ["build", str(tmp_path)])
    assert result.exit_code == 1
    assert "Build failed" in result.output
    assert str(Path("srcs") / "bad.md") in result.output
    assert "Front matter error: nope" in result.output


def test_cli_build_passes_config_option(monkeypatch, tmp_path):
    called = {}

    def fake_build_site(work_dir, config_path=None):
        called["args"] = (work_dir, config_path)
        return Site(work_dir, site_config={"docDir": tmp_path / "out"})

    monkeypatch.setattr("lantern.build.build_site", fake_build_site)
    result = CliRunner().invoke(
        cli, ["build", str(tmp_path), "--config", str(tmp_path / "alt.yml"), "--debug"], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert called["args"] == (tmp_path, tmp_path / "alt.yml")


def test_cli_serve_options(monkeypatch, tmp_path):
    called = {}

    def fake_serve_site(work_dir, config_path=None, **kwargs):
        called.update(kwargs, work_dir=work_dir)

    monkeypatch.setattr("lantern.build.serve_site", fake_serve_site)
    result = CliRunner().invoke(
        cli,
        ["serve", str(tmp_path), "--ip", "0.0.0.0", "--port", "5050", "--ws-port", "5051", "--live-reload"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    assert called == {
        "work_dir": tmp_path,
        "ip": "0.0.0.0",
        "port": 5050,
        "ws_port": 5051,
        "live_reload": True,
    }


def test_cli_serve_defaults_and_errors(monkeypatch, tmp_path):
    called = {}

    def fake_serve_site(work_dir, config_path=None, **kwargs):
        called.update(kwargs)
        raise ConfigError("Cannot find site config")

    monkeypatch.setattr("lantern.build.serve_site", fake_serve_site)
    result = CliRunner().invoke(cli, ["serve", str(tmp_path)])
    assert result.exit_code == 1
    assert called == {"ip": "localhost", "port": 2333, "ws_port": None, "live_reload": False}
    assert "Cannot find site config" in result.output


def test_cli_build_bad_language_file(tmp_path):
    (tmp_path / "srcs").mkdir()
    (tmp_path / "siteConfig.yml").write_text("title: Demo\n", encoding="utf-8")
    languages = tmp_path / "themes" / "default" / "languages"
    languages.mkdir(parents=True)
    (languages / "default.yml").write_text("nav: [unclosed\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["build", str(tmp_path)])
    assert result.exit_code == 1
    assert "Configuration error" in result.output
    assert "default.yml" in result.output
