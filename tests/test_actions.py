import pytest

from pkgsolve import actions, termui
from pkgsolve.exceptions import ResolutionImpossible, ResolutionTooDeep
from pkgsolve.models.repositories import PyPIRepository
from pkgsolve.resolver import Fresh, Unsatisfied


@pytest.fixture(autouse=True)
def log_dir(tmp_path, monkeypatch):
    path = tmp_path / "logs"
    monkeypatch.setenv("PKGSOLVE_LOG_DIR", str(path))
    return path


INSTALLED = {
    "requests": "2.19.1",
    "chardet": "3.0.4",
    "idna": "2.7",
    "urllib3": "1.22",
    "certifi": "2018.11.17",
}


def test_do_resolve(config, fake_repository, environment, capsys, log_dir):
    resolution = actions.do_resolve(
        ["requests"], config=config, repository=fake_repository, environment=environment
    )

    assert str(resolution["requests"].version) == "2.19.1"
    out = capsys.readouterr().out
    assert "requests==2.19.1" in out
    assert "idna==2.7" in out
    assert not list(log_dir.glob("*.log"))


def test_do_resolve_with_preferences(config, fake_repository, environment, capsys):
    resolution = actions.do_resolve(
        ["requests"],
        config=config,
        repository=fake_repository,
        environment=environment,
        preferences={"requests": "2.18.4"},
    )
    assert str(resolution["requests"].version) == "2.18.4"
    assert "requests==2.18.4" in capsys.readouterr().out


def test_do_resolve_with_constraints_and_overrides(config, fake_repository, environment, capsys):
    resolution = actions.do_resolve(
        ["requests"],
        config=config,
        repository=fake_repository,
        environment=environment,
        constraints=["chardet<4"],
        overrides=["idna==2.8"],
    )
    assert str(resolution["idna"].version) == "2.8"
    assert "idna==2.8" in capsys.readouterr().out


def test_do_resolve_failure(config, fake_repository, environment, capsys, log_dir):
    with pytest.raises(ResolutionImpossible):
        actions.do_resolve(["unknown-package"], config=config, repository=fake_repository, environment=environment)

    err = capsys.readouterr().err
    assert "Unable to find a resolution" in err
    assert "unknown-package" in err
    # The debug log is kept for inspection
    assert list(log_dir.glob("pkgsolve-resolve-*.log"))


def test_do_resolve_too_deep(config, fake_repository, environment, capsys, monkeypatch):
    monkeypatch.setenv("PKGSOLVE_RESOLVE_MAX_ROUNDS", "2")
    with pytest.raises(ResolutionTooDeep):
        actions.do_resolve(["requests"], config=config, repository=fake_repository, environment=environment)
    assert "strategy.resolve_max_rounds" in capsys.readouterr().err


def test_do_check(config, fake_repository, environment, capsys):
    result = actions.do_check(
        INSTALLED, ["requests"], config=config, repository=fake_repository, environment=environment
    )
    assert result == Fresh()
    assert "All requirements are satisfied" in capsys.readouterr().out

    installed = dict(INSTALLED, certifi="0.1")
    result = actions.do_check(
        installed, ["requests"], config=config, repository=fake_repository, environment=environment
    )
    assert isinstance(result, Unsatisfied)
    assert "certifi" in capsys.readouterr().err


def test_get_repository(config, tmp_path):
    config["pypi.url"] = "https://my.pypi.org/simple"
    config["cache_dir"] = str(tmp_path / "cache")

    repository = actions.get_repository(config)
    try:
        assert isinstance(repository, PyPIRepository)
        assert repository.url_prefix == "https://my.pypi.org"
    finally:
        repository.session.close()


def test_do_check_quiet(config, fake_repository, environment, capsys):
    ui = termui.UI()
    ui.set_verbosity(termui.Verbosity.QUIET)
    installed = dict(INSTALLED, certifi="0.1")

    result = actions.do_check(
        installed, ["requests"], config=config, ui=ui, repository=fake_repository, environment=environment
    )
    assert isinstance(result, Unsatisfied)
    assert "certifi" not in capsys.readouterr().err
    ui.exit_stack.close()
