"""
StatusDescriber — renders a phase's human-readable status line.

Precedence:
    1. The phase's own ``note`` (set on failure), verbatim.
    2. The current state's label from the kind's state table.
    3. The kind's type template (``describe_type``).

Labels and templates may contain named references such as ``%{repo}``.
A capitalized reference (``%{Repo}``) capitalizes the value and an
all-caps one (``%{REPO}``) upper-cases it.  References with no known
key are left untouched.

Describing is read-only: it never mutates the phase.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from phaseflow.core.constants import PhaseKind
from phaseflow.workflow.phase import Phase
from phaseflow.workflow.state_table import DEFAULT_STATE_TABLES, StateTableRegistry
from phaseflow.workflow.targets import describe_targets

_REFERENCE = re.compile(r"%\{(\w+)\}")

# Display names for repository keys.
REPOSITORY_NAMES: dict[str, str] = {
    "emma": "EMMA",
    "ace": "ACE",
    "internetArchive": "Internet Archive",
    "openAlex": "OpenAlex",
    "bibliovault": "BiblioVault",
}

TYPE_TEMPLATES: dict[PhaseKind, str] = {
    PhaseKind.STORE: "storing file for %{targets}",
    PhaseKind.EDIT: "modifying %{targets}",
    PhaseKind.INDEX: "indexing %{targets}",
    PhaseKind.QUEUE: "submitting to %{repo}: %{targets}",
    PhaseKind.UNQUEUE: "withdrawing from %{repo}: %{targets}",
    PhaseKind.UNSTORE: "removing stored files for %{targets}",
    PhaseKind.UNINDEX: "removing index entries for %{targets}",
    PhaseKind.UNRECORD: "removing submission records for %{targets}",
    PhaseKind.REVIEW: "review of %{targets}",
    PhaseKind.SCHEDULE: "scheduling review of %{targets}",
    PhaseKind.BATCH_OPERATION: "BULK OPERATION [%{targets}]",
}


def repository_name(key: str | None) -> str | None:
    if not key:
        return None
    return REPOSITORY_NAMES.get(key, key)


def interpolate(text: str, values: Mapping[str, str | None]) -> str:
    """Replace ``%{name}`` references in *text* with entries of *values*."""

    def _replace(match: re.Match) -> str:
        term = match.group(1)
        key = term.lower()
        if key not in values:
            return match.group(0)
        value = values[key]
        if term == term.capitalize():
            return (value or term).capitalize()
        if term == term.upper():
            return (value or term).upper()
        return value or term.upper()

    return _REFERENCE.sub(_replace, text)


class StatusDescriber:
    """
    Renders status text for phases.

    Args:
        tables: Source of per-state labels.
        templates: Per-kind type templates; bulk kinds fall back to the
            template of their single counterpart.
    """

    def __init__(
        self,
        tables: StateTableRegistry | None = None,
        templates: Mapping[PhaseKind, str] | None = None,
    ) -> None:
        self.tables = tables or DEFAULT_STATE_TABLES
        self.templates = dict(templates or TYPE_TEMPLATES)

    def describe_status(self, phase: Phase) -> str:
        if phase.note:
            return phase.note
        label = self.tables.get(phase.kind).note(phase.state)
        if label:
            return interpolate(label, self.interpolations(phase))
        return self.describe_type(phase)

    def describe_type(self, phase: Phase) -> str:
        template = self.templates.get(phase.kind) or self.templates.get(phase.kind.single)
        if not template:
            return f"{phase.kind.value} {self._targets(phase)}"
        return interpolate(template, self.interpolations(phase))

    def interpolations(self, phase: Phase) -> dict[str, str | None]:
        return {
            "id": phase.id,
            "sid": phase.submission_id,
            "repo": repository_name(phase.repository),
            "targets": self._targets(phase),
            "user": phase.user,
            "kind": phase.kind.value,
            "state": phase.state,
        }

    @staticmethod
    def _targets(phase: Phase) -> str:
        if phase.is_bulk:
            return describe_targets(phase.targets)
        return phase.submission_id or phase.id


_default = StatusDescriber()


def describe_status(phase: Phase) -> str:
    """Status line for *phase* using the default tables and templates."""
    return _default.describe_status(phase)


def describe_type(phase: Phase) -> str:
    return _default.describe_type(phase)
