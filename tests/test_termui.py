import threading

import pytest
from rich.style import Style

from pkgsolve import termui


@pytest.fixture
def ui(tmp_path):
    ui = termui.UI()
    ui.log_dir = str(tmp_path / "logs")
    return ui


def test_ui_uses_configured_theme(config):
    config["theme.primary"] = "magenta"
    ui = termui.UI(theme=config.load_theme())

    assert ui.console.get_style("primary") == Style.parse("magenta")
    assert ui.err_console.get_style("primary") == Style.parse("magenta")
    assert ui.console.get_style("req") == Style.parse("bold green")


def test_ui_not_interactive_with_env(ui, monkeypatch):
    monkeypatch.setenv("PKGSOLVE_NON_INTERACTIVE", "1")
    assert not ui.is_interactive()


def test_open_spinner_falls_back_to_text(ui, capsys):
    with ui.open_spinner("Checking") as spinner:
        assert isinstance(spinner, termui.DummySpinner)
        spinner.update("Done")
    err = capsys.readouterr().err
    assert "STATUS: Checking" in err
    assert "STATUS: Done" in err


def test_log_file_removed_on_success(ui, tmp_path):
    with ui.logging("resolve") as logger:
        logger.info("hello")
    assert not list((tmp_path / "logs").glob("*.log"))


def test_log_file_kept_on_failure(ui, tmp_path, capsys):
    def fetch():
        termui.logger.debug("fetching foo")

    with pytest.raises(RuntimeError):
        with ui.logging("resolve"):
            worker = threading.Thread(target=fetch, name="pkgsolve-fetch_0")
            worker.start()
            worker.join()
            raise RuntimeError("boom")

    (log_file,) = (tmp_path / "logs").glob("pkgsolve-resolve-*.log")
    content = log_file.read_text("utf-8")
    assert "[pkgsolve-fetch_0] pkgsolve.termui: fetching foo" in content
    assert "RuntimeError: boom" in content
    assert str(log_file.name) in capsys.readouterr().err.replace("\n", "")


def test_logging_streams_to_stderr_when_verbose(ui, capsys):
    ui.set_verbosity(termui.Verbosity.DEBUG)
    with ui.logging("resolve"):
        termui.logger.debug("solving")
    assert "[MainThread] pkgsolve.termui: solving" in capsys.readouterr().err
    assert len(termui.logger.handlers) == 1
