from __future__ import annotations

import hashlib
from pathlib import Path
from typing import TYPE_CHECKING

from rich.markup import escape

from pkgsolve import termui
from pkgsolve.config import Config
from pkgsolve.exceptions import ResolutionImpossible, ResolutionTooDeep
from pkgsolve.models.caches import MetadataCache
from pkgsolve.models.repositories import PyPIRepository
from pkgsolve.models.requirements import parse_requirement
from pkgsolve.models.session import PkgsolveSession
from pkgsolve.resolver import Unsatisfied, check_satisfied, resolve
from pkgsolve.resolver.reporters import RichLockReporter

if TYPE_CHECKING:
    from typing import Iterable, Mapping

    from packaging.version import Version

    from pkgsolve.models.markers import Environment
    from pkgsolve.models.repositories import BaseRepository
    from pkgsolve.models.requirements import Requirement
    from pkgsolve.resolver import Resolution, SatisfactionResult


def get_repository(config: Config) -> PyPIRepository:
    """Create the repository for the index configured in ``pypi.url``."""
    url = config["pypi.url"]
    cache_name = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
    session = PkgsolveSession(verify_ssl=config["pypi.verify_ssl"], timeout=config["request_timeout"])
    return PyPIRepository(session, url, MetadataCache(Path(config["cache_dir"]) / "metadata" / f"{cache_name}.json"))


def format_resolution_impossible(err: ResolutionImpossible) -> str:
    return "Unable to find a resolution because of the following conflicts:\n" + "\n".join(
        f"  {escape(line)}" if line else "" for line in err.report
    )


def do_resolve(
    requirements: Iterable[Requirement | str],
    *,
    config: Config | None = None,
    ui: termui.UI | None = None,
    repository: BaseRepository | None = None,
    environment: Environment | None = None,
    requires_python: str | None = None,
    preferences: Mapping[str, Version | str] | None = None,
    constraints: Iterable[Requirement | str] = (),
    overrides: Iterable[Requirement | str] = (),
) -> Resolution:
    """Resolve the requirements against the configured index and print the result."""
    config = config or Config()
    ui = ui or termui.UI(theme=config.load_theme())
    ui.log_dir = config["log_dir"]
    reqs = [parse_requirement(r) if isinstance(r, str) else r for r in requirements]
    if repository is None:
        repository = get_repository(config)
    resolve_max_rounds = config["strategy.resolve_max_rounds"]

    with ui.logging("resolve"):
        # The context managers are nested to ensure the spinner is stopped before
        # any message is thrown to the output.
        with RichLockReporter(reqs, ui) as reporter:
            try:
                resolution = resolve(
                    reqs,
                    repository,
                    environment,
                    requires_python=requires_python,
                    allow_prereleases=config["strategy.allow_prereleases"],
                    preferences=preferences,
                    constraints=constraints,
                    overrides=overrides,
                    max_rounds=resolve_max_rounds,
                    max_workers=config["strategy.max_workers"],
                    prefetch=config["strategy.prefetch"],
                    reporter=reporter,
                )
            except ResolutionTooDeep:
                reporter.update(f"{termui.Emoji.FAIL} Resolution failed.", info="", completed=1)
                ui.echo(
                    "The dependency resolution exceeds the maximum loop depth of "
                    f"{resolve_max_rounds}. Try to narrow down the requirements or increase the "
                    "[success]`strategy.resolve_max_rounds`[/] config.",
                    err=True,
                )
                raise
            except ResolutionImpossible as err:
                reporter.update(f"{termui.Emoji.FAIL} Resolution failed.", info="", completed=1)
                ui.error(format_resolution_impossible(err))
                raise
            else:
                reporter.update(f"{termui.Emoji.LOCK} Resolution successful.", info="", completed=1)

    for package in resolution.packages:
        ui.echo(f"  [req]{escape(package.as_line())}[/]")
    return resolution


def do_check(
    installed: Mapping[str, Version | str],
    requirements: Iterable[Requirement | str],
    *,
    config: Config | None = None,
    ui: termui.UI | None = None,
    repository: BaseRepository | None = None,
    environment: Environment | None = None,
    constraints: Iterable[Requirement | str] = (),
    overrides: Iterable[Requirement | str] = (),
) -> SatisfactionResult:
    """Check if the installed packages already satisfy the requirements, without resolving."""
    config = config or Config()
    ui = ui or termui.UI(theme=config.load_theme())
    ui.log_dir = config["log_dir"]
    if repository is None:
        repository = get_repository(config)
    with ui.logging("check"), ui.open_spinner("Checking installed packages...") as spinner:
        result = check_satisfied(
            installed, requirements, repository, environment, constraints=constraints, overrides=overrides
        )
        spinner.update("Check finished")
    if isinstance(result, Unsatisfied):
        ui.warn(f"[req]{escape(result.requirement.as_line())}[/] is not satisfied by the installed packages")
    else:
        ui.echo(f"{termui.Emoji.SUCC} All requirements are satisfied.")
    return result
