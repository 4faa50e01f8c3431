"""
Explain why a resolution failed.

The derivation graph of the terminal incompatibility is walked from the
leaves to the root. Every derived incompatibility becomes a sentence citing
its two causes. Derivations reused more than once get a line number so that
later sentences can refer to them instead of repeating them, and chains of
single-use derivations are collapsed into one sentence.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgsolve.resolver.incompatibility import Incompatibility, IncompatibilityStore


class ReportWriter:
    def __init__(self, root: Incompatibility, store: IncompatibilityStore) -> None:
        self._root = root
        self._store = store
        self._derivations: dict[int, int] = {}
        self._lines: list[tuple[str, int | None]] = []
        self._line_numbers: dict[int, int] = {}
        self._count_derivations(root)

    def _count_derivations(self, incompatibility: Incompatibility) -> None:
        if incompatibility.id in self._derivations:
            self._derivations[incompatibility.id] += 1
            return
        self._derivations[incompatibility.id] = 1
        if incompatibility.is_derived():
            for cause in self._store.causes(incompatibility):
                self._count_derivations(cause)

    def write(self) -> list[str]:
        if self._root.is_derived():
            self._visit(self._root)
        else:
            self._write(self._root, f"Because {self._root}, version solving failed.")

        padding = len(f"({len(self._line_numbers)}) ") if self._line_numbers else 0
        result: list[str] = []
        last_was_empty = False
        for message, number in self._lines:
            if not message:
                if not last_was_empty:
                    result.append("")
                last_was_empty = True
                continue
            last_was_empty = False
            if number is not None:
                message = f"({number})".ljust(padding) + message
            else:
                message = " " * padding + message
            result.append(message)
        return result

    def _write(self, incompatibility: Incompatibility, message: str, numbered: bool = False) -> None:
        if numbered:
            number = len(self._line_numbers) + 1
            self._line_numbers[incompatibility.id] = number
            self._lines.append((message, number))
        else:
            self._lines.append((message, None))

    def _visit(self, incompatibility: Incompatibility, conclusion: bool = False) -> None:
        numbered = conclusion or self._derivations[incompatibility.id] > 1
        conjunction = "So," if conclusion or incompatibility is self._root else "And"
        incompatibility_string = str(incompatibility)

        conflict, other = self._store.causes(incompatibility)
        if conflict.is_derived() and other.is_derived():
            conflict_line = self._line_numbers.get(conflict.id)
            other_line = self._line_numbers.get(other.id)

            if conflict_line is not None and other_line is not None:
                reason = conflict.and_to_string(other, conflict_line, other_line)
                self._write(incompatibility, f"Because {reason}, {incompatibility_string}.", numbered=numbered)
            elif conflict_line is not None or other_line is not None:
                if conflict_line is not None:
                    with_line, without_line, line = conflict, other, conflict_line
                else:
                    with_line, without_line, line = other, conflict, other_line
                self._visit(without_line)
                self._write(
                    incompatibility,
                    f"{conjunction} because {with_line} ({line}), {incompatibility_string}.",
                    numbered=numbered,
                )
            else:
                single_line_conflict = self._is_single_line(conflict)
                single_line_other = self._is_single_line(other)
                if single_line_other or single_line_conflict:
                    first = conflict if single_line_other else other
                    second = other if single_line_other else conflict
                    self._visit(first)
                    self._visit(second)
                    self._write(incompatibility, f"Thus, {incompatibility_string}.", numbered=numbered)
                else:
                    self._visit(conflict, conclusion=True)
                    self._lines.append(("", None))
                    self._visit(other)
                    self._write(
                        incompatibility,
                        f"{conjunction} because {conflict} ({self._line_numbers[conflict.id]}), "
                        f"{incompatibility_string}.",
                        numbered=numbered,
                    )
        elif conflict.is_derived() or other.is_derived():
            derived, external = (conflict, other) if conflict.is_derived() else (other, conflict)
            derived_line = self._line_numbers.get(derived.id)
            if derived_line is not None:
                reason = external.and_to_string(derived, None, derived_line)
                self._write(incompatibility, f"Because {reason}, {incompatibility_string}.", numbered=numbered)
            elif self._is_collapsible(derived):
                derived_conflict, derived_other = self._store.causes(derived)
                if derived_conflict.is_derived():
                    collapsed_derived, collapsed_external = derived_conflict, derived_other
                else:
                    collapsed_derived, collapsed_external = derived_other, derived_conflict
                self._visit(collapsed_derived)
                reason = collapsed_external.and_to_string(external, None, None)
                self._write(
                    incompatibility, f"{conjunction} because {reason}, {incompatibility_string}.", numbered=numbered
                )
            else:
                self._visit(derived)
                self._write(
                    incompatibility,
                    f"{conjunction} because {external}, {incompatibility_string}.",
                    numbered=numbered,
                )
        else:
            reason = conflict.and_to_string(other, None, None)
            self._write(incompatibility, f"Because {reason}, {incompatibility_string}.", numbered=numbered)

    def _is_collapsible(self, incompatibility: Incompatibility) -> bool:
        if self._derivations[incompatibility.id] > 1:
            return False
        conflict, other = self._store.causes(incompatibility)
        if conflict.is_derived() == other.is_derived():
            return False
        complex_cause = conflict if conflict.is_derived() else other
        return complex_cause.id not in self._line_numbers

    def _is_single_line(self, incompatibility: Incompatibility) -> bool:
        conflict, other = self._store.causes(incompatibility)
        return not conflict.is_derived() and not other.is_derived()


def format_report(incompatibility: Incompatibility, store: IncompatibilityStore) -> list[str]:
    """Return the lines explaining why ``incompatibility`` makes resolution impossible."""
    return ReportWriter(incompatibility, store).write()
