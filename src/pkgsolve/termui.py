from __future__ import annotations

import contextlib
import enum
import logging
import os
import tempfile
import warnings
from typing import TYPE_CHECKING

from rich.console import Console
from rich.theme import Theme

from pkgsolve.exceptions import PkgsolveWarning

if TYPE_CHECKING:
    from typing import Any, Iterator

    from pkgsolve._types import RichProtocol, Spinner, SpinnerT

logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG)
logger.addHandler(logging.NullHandler())

DEFAULT_THEME = {
    "primary": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "req": "bold green",
}
NON_INTERACTIVE_ENV = "PKGSOLVE_NON_INTERACTIVE"
# Metadata is fetched on worker threads, the thread name tells the records apart.
LOG_FORMAT = "[%(threadName)s] %(name)s: %(message)s"

# Legacy Windows renderer may have problem rendering emojis
_LEGACY_WINDOWS = Console().legacy_windows


class Verbosity(enum.IntEnum):
    QUIET = -1
    NORMAL = 0
    DETAIL = 1
    DEBUG = 2


LOG_LEVELS = {
    Verbosity.NORMAL: logging.WARN,
    Verbosity.DETAIL: logging.INFO,
    Verbosity.DEBUG: logging.DEBUG,
}


class Emoji:
    if _LEGACY_WINDOWS:
        SUCC = "v"
        FAIL = "x"
        LOCK = " "
    else:
        SUCC = ":heavy_check_mark:"
        FAIL = ":heavy_multiplication_x:"
        LOCK = ":lock:"


if _LEGACY_WINDOWS:
    SPINNER = "line"
else:
    SPINNER = "dots"


class DummySpinner:
    """A dummy spinner class implementing needed interfaces.
    But only display text onto screen.
    """

    def __init__(self, text: str, console: Console) -> None:
        self.text = text
        self.console = console

    def _show(self) -> None:
        self.console.print(f"[primary]STATUS:[/] {self.text}")

    def update(self, text: str) -> None:
        self.text = text
        self._show()

    def __enter__(self: SpinnerT) -> SpinnerT:
        self._show()  # type: ignore[attr-defined]
        return self

    def __exit__(self, *args: Any) -> None:
        pass


class UI:
    """Terminal UI object, owning a stdout and a stderr console that share a theme."""

    def __init__(
        self,
        verbosity: Verbosity = Verbosity.NORMAL,
        *,
        theme: Theme | None = None,
        exit_stack: contextlib.ExitStack | None = None,
    ) -> None:
        self.verbosity = verbosity
        self.exit_stack = exit_stack or contextlib.ExitStack()
        self.log_dir: str | None = None
        self.set_theme(theme or Theme(DEFAULT_THEME))

    def set_theme(self, theme: Theme) -> None:
        self.console = Console(highlight=False, theme=theme)
        self.err_console = Console(stderr=True, highlight=False, theme=theme)

    def set_verbosity(self, verbosity: int) -> None:
        self.verbosity = Verbosity(verbosity)
        if self.verbosity == Verbosity.QUIET:
            self.exit_stack.enter_context(warnings.catch_warnings())
            warnings.simplefilter("ignore", PkgsolveWarning, append=True)
            warnings.simplefilter("ignore", FutureWarning, append=True)

    def is_interactive(self) -> bool:
        """Check if the terminal is run under interactive mode"""
        return NON_INTERACTIVE_ENV not in os.environ and self.err_console.is_interactive

    def echo(
        self,
        message: str | RichProtocol = "",
        err: bool = False,
        verbosity: Verbosity = Verbosity.QUIET,
        **kwargs: Any,
    ) -> None:
        """print message using rich console

        :param message: message with rich markup, defaults to "".
        :param err: if true print to stderr, defaults to False.
        :param verbosity: verbosity level, defaults to QUIET.
        """
        if self.verbosity >= verbosity:
            console = self.err_console if err else self.console
            if not console.is_interactive:
                kwargs.setdefault("crop", False)
                kwargs.setdefault("overflow", "ignore")
            console.print(message, **kwargs)

    def _make_log_file(self, type_: str) -> str:
        if self.log_dir:
            os.makedirs(self.log_dir, exist_ok=True)
        fd, log_file = tempfile.mkstemp(".log", f"pkgsolve-{type_}-", self.log_dir)
        os.close(fd)
        return log_file

    @contextlib.contextmanager
    def logging(self, type_: str = "resolve") -> Iterator[logging.Logger]:
        """A context manager that opens a file for logging when verbosity is NORMAL or
        print to the stderr otherwise.

        The log file is removed when the block succeeds and kept, with a hint
        pointing to it, when it raises.
        """
        log_file: str | None = None
        if self.verbosity >= Verbosity.DETAIL:
            handler: logging.Handler = logging.StreamHandler()
            handler.setLevel(LOG_LEVELS[self.verbosity])
        else:
            log_file = self._make_log_file(type_)
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setLevel(logging.DEBUG)

        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        succeeded = False
        try:
            yield logger
            succeeded = True
        except Exception:
            if log_file:
                logger.exception("Error occurs")
                self.echo(
                    f"See [warning]{log_file}[/] for detailed debug log.",
                    style="error",
                    err=True,
                )
            raise
        finally:
            logger.removeHandler(handler)
            handler.close()
            if log_file and succeeded:
                with contextlib.suppress(OSError):
                    os.unlink(log_file)

    def open_spinner(self, title: str) -> Spinner:
        """Open a spinner as a context manager."""
        if self.verbosity >= Verbosity.DETAIL or not self.is_interactive():
            return DummySpinner(title, self.err_console)
        else:
            return self.err_console.status(title, spinner=SPINNER, spinner_style="primary")

    def warn(self, message: str, verbosity: Verbosity = Verbosity.NORMAL) -> None:
        """Print a warning to stderr."""
        self.echo(f"[warning]WARNING:[/] {message}", err=True, verbosity=verbosity)

    def error(self, message: str, verbosity: Verbosity = Verbosity.QUIET) -> None:
        """Print an error to stderr."""
        self.echo(f"[error]ERROR:[/] {message}", err=True, verbosity=verbosity)
