"""Deadline template registry loaded from YAML.

Templates declare the legal deadlines created when a stage is entered and
the ``depends_on`` edges between them. Dependency cycles are a
configuration defect and are rejected when the registry is built.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from karin.core.errors import CyclicDependencyError, TemplateConfigError
from karin.process.models import DeadlineTemplate
from karin.process.stages import StageId

_DEFAULT_TEMPLATES_PATH = Path(__file__).resolve().parents[3] / "config" / "deadline_templates.yml"


def find_cycle(edges: dict[str, str | None]) -> list[str] | None:
    """Return one dependency cycle as a list of ids, or None.

    ``edges`` maps each template id to the id it depends on. Every node
    has at most one outgoing edge, so following the chain from each node
    is enough.
    """
    settled: set[str] = set()
    for start in edges:
        if start in settled:
            continue
        path: list[str] = []
        on_path: set[str] = set()
        node: str | None = start
        while node is not None and node not in settled:
            if node in on_path:
                return path[path.index(node):] + [node]
            path.append(node)
            on_path.add(node)
            node = edges.get(node)
        settled.update(path)
    return None


class TemplateRegistry:
    """Immutable set of deadline templates indexed by id and stage."""

    def __init__(self, templates: list[DeadlineTemplate]) -> None:
        self._templates: dict[str, DeadlineTemplate] = {}
        for template in templates:
            if template.id in self._templates:
                raise TemplateConfigError(f"Duplicate deadline template id {template.id!r}")
            self._templates[template.id] = template
        self._validate()

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> TemplateRegistry:
        config_path = Path(path) if path else _DEFAULT_TEMPLATES_PATH
        with open(config_path) as fh:
            raw = yaml.safe_load(fh) or {}
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TemplateRegistry:
        templates = []
        for entry in raw.get("templates", []):
            try:
                templates.append(DeadlineTemplate(**entry))
            except (PydanticValidationError, TypeError) as exc:
                raise TemplateConfigError(f"Invalid deadline template {entry!r}: {exc}") from exc
        return cls(templates)

    def _validate(self) -> None:
        for template in self._templates.values():
            if template.stage in (StageId.THIRD_PARTY, StageId.SUBCONTRACTING):
                raise TemplateConfigError(
                    f"Template {template.id!r} is attached to case marker {template.stage!r}"
                )
            if template.depends_on is not None and template.depends_on not in self._templates:
                raise TemplateConfigError(
                    f"Template {template.id!r} depends on unknown template {template.depends_on!r}"
                )

        cycle = find_cycle({t.id: t.depends_on for t in self._templates.values()})
        if cycle is not None:
            raise CyclicDependencyError(cycle)

    def get(self, template_id: str) -> DeadlineTemplate | None:
        return self._templates.get(template_id)

    def for_stage(self, stage: StageId) -> list[DeadlineTemplate]:
        return [t for t in self._templates.values() if t.stage == stage]

    @property
    def templates(self) -> dict[str, DeadlineTemplate]:
        return dict(self._templates)

    def __len__(self) -> int:
        return len(self._templates)
