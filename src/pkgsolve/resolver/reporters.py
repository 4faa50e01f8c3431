from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.live import Live
from rich.progress import Progress, SpinnerColumn, TimeElapsedColumn

from pkgsolve.termui import SPINNER, UI, Verbosity, logger

if TYPE_CHECKING:
    from packaging.version import Version
    from rich.console import Console, ConsoleOptions, RenderResult

    from pkgsolve.models.packages import Package
    from pkgsolve.models.requirements import Requirement
    from pkgsolve.resolver.incompatibility import Incompatibility


def log_title(title: str) -> None:
    logger.info("=" * 8 + " " + title + " " + "=" * 8)


class BaseReporter:
    """Delegate class to provide progress reporting for the solver."""

    def starting(self) -> None:
        """Called before the resolution actually starts."""

    def adding_incompatibility(self, incompatibility: Incompatibility) -> None:
        """Called when a new fact is learned, either from metadata or from a conflict."""

    def deciding(self, package: Package, version: Version) -> None:
        """Called when a version is picked for a package."""

    def conflict(self, incompatibility: Incompatibility) -> None:
        """Called when an incompatibility is satisfied by the partial solution."""

    def backjumping(self, decision_level: int) -> None:
        """Called before the partial solution is rolled back to ``decision_level``."""

    def ending(self, decisions: dict[Package, Version] | None) -> None:
        """Called with the decisions once resolved, or ``None`` if the resolution failed."""


class LockReporter(BaseReporter):
    def starting(self) -> None:
        log_title("Start resolving requirements")

    def adding_incompatibility(self, incompatibility: Incompatibility) -> None:
        logger.debug("  fact: %s", incompatibility)

    def deciding(self, package: Package, version: Version) -> None:
        logger.info("  Adding new pin: %s %s", package, version)

    def conflict(self, incompatibility: Incompatibility) -> None:
        logger.info("  Conflict detected: %s", incompatibility)

    def backjumping(self, decision_level: int) -> None:
        logger.info("  Backjumping to decision level %d", decision_level)

    def ending(self, decisions: dict[Package, Version] | None) -> None:
        log_title("Resolution Result")
        if decisions:
            names = {str(package): version for package, version in decisions.items()}
            column_width = max(map(len, names))
            for name, version in names.items():
                logger.info(f"  {name.rjust(column_width)} {version}")


class RichLockReporter(LockReporter):
    def __init__(self, requirements: list[Requirement], ui: UI) -> None:
        self.ui = ui
        self.console = ui.console
        self.requirements = requirements
        self._spinner = Progress(
            SpinnerColumn(SPINNER, style="primary"),
            TimeElapsedColumn(),
            "[bold]{task.description}",
            "{task.fields[info]}",
            console=self.console,
        )
        self._spinner_task = self._spinner.add_task("Resolving dependencies", info="", total=1)
        self.live = Live(self, console=self.console)
        self._decided = 0
        self._conflicts = 0

    def update(self, description: str | None = None, info: str | None = None, completed: float | None = None) -> None:
        self._spinner.update(self._spinner_task, description=description, info=info, completed=completed)
        self.live.refresh()

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:  # pragma: no cover
        yield self._spinner

    def start(self) -> None:
        """Start the progress display."""
        if self.ui.verbosity < Verbosity.DETAIL:
            self.live.start(refresh=True)

    def stop(self) -> None:
        """Stop the progress display."""
        self.live.stop()
        if not self.ui.is_interactive():
            self.console.print()

    def __enter__(self) -> RichLockReporter:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()

    def starting(self) -> None:
        log_title("Start resolving requirements")
        for req in self.requirements:
            logger.info("  " + req.as_line())

    def _refresh_info(self) -> None:
        self.update(info=f"[info]{self._decided}[/] decided, [info]{self._conflicts}[/] conflicts")

    def deciding(self, package: Package, version: Version) -> None:
        super().deciding(package, version)
        self._decided += 1
        self._refresh_info()

    def conflict(self, incompatibility: Incompatibility) -> None:
        super().conflict(incompatibility)
        self._conflicts += 1
        self._refresh_info()

    def backjumping(self, decision_level: int) -> None:
        super().backjumping(decision_level)
        self._decided = decision_level
        self._refresh_info()
