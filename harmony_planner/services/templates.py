from __future__ import annotations

import json
import logging
import re
import shutil
from pathlib import Path

from pydantic import ValidationError

from harmony_planner.logging_utils import log_event
from harmony_planner.models import TEMPLATE_ID_PATTERN, Template, TemplateSummary
from harmony_planner.services.errors import TemplateStoreError, UnknownTemplate

logger = logging.getLogger(__name__)


def _bars(*roles: str, cadence: str | None = None) -> list[dict]:
    slots: list[dict] = []
    for role in roles:
        slot: dict = {"role": role}
        if role == "cadence_target" and cadence:
            slot["cadence"] = cadence
        slots.append(slot)
    return slots


_BUILTIN_DOCUMENTS: dict[str, dict] = {
    "aaba_8": {
        "id": "aaba_8",
        "description": "Compact AABA song form, two bars per phrase.",
        "phrases": [
            {"label": "A1", "bars": _bars("normal", "cadence_target", cadence="half")},
            {"label": "A2", "bars": _bars("normal", "cadence_target", cadence="authentic")},
            {"label": "B", "bars": _bars("modulation_point", "normal")},
            {"label": "A3", "bars": _bars("turnaround", "cadence_target", cadence="authentic")},
        ],
    },
    "blues_12": {
        "id": "blues_12",
        "description": "Twelve-bar form in three four-bar lines.",
        "phrases": [
            {"label": "line1", "bars": _bars("normal", "normal", "normal", "normal")},
            {"label": "line2", "bars": _bars("normal", "normal", "normal", "cadence_target", cadence="plagal")},
            {"label": "line3", "bars": _bars("normal", "normal", "turnaround", "cadence_target", cadence="authentic")},
        ],
    },
    "pop_verse_chorus_16": {
        "id": "pop_verse_chorus_16",
        "description": "Verse and chorus pairs with a lift into the second chorus.",
        "phrases": [
            {"label": "verse1", "bars": _bars("normal", "normal", "normal", "cadence_target", cadence="half")},
            {"label": "chorus1", "bars": _bars("normal", "normal", "turnaround", "cadence_target", cadence="authentic")},
            {"label": "verse2", "bars": _bars("normal", "normal", "turnaround", "cadence_target", cadence="deceptive")},
            {
                "label": "chorus2",
                "bars": _bars("modulation_point", "normal", "turnaround", "cadence_target", cadence="authentic"),
            },
        ],
    },
    "jazz_aaba_32": {
        "id": "jazz_aaba_32",
        "description": "Thirty-two bar AABA standard form.",
        "phrases": [
            {
                "label": "A1",
                "bars": _bars("normal", "normal", "normal", "normal", "normal", "normal", "normal", "cadence_target", cadence="half"),
            },
            {
                "label": "A2",
                "bars": _bars("normal", "normal", "normal", "normal", "normal", "normal", "turnaround", "cadence_target"),
            },
            {
                "label": "B",
                "bars": _bars(
                    "modulation_point", "normal", "normal", "normal", "modulation_point", "normal", "normal", "cadence_target", cadence="half"
                ),
            },
            {
                "label": "A3",
                "bars": _bars("normal", "normal", "normal", "normal", "normal", "normal", "turnaround", "cadence_target"),
            },
        ],
    },
}

BUILTIN_TEMPLATES: dict[str, Template] = {
    template_id: Template.model_validate(document) for template_id, document in _BUILTIN_DOCUMENTS.items()
}


def builtin_template_ids() -> list[str]:
    return sorted(BUILTIN_TEMPLATES)


def summarize(template: Template, source: str) -> TemplateSummary:
    return TemplateSummary(
        id=template.id,
        version=template.version,
        bars=template.total_bars,
        phrases=len(template.phrases),
        source=source,
        meter=template.meter,
        description=template.description,
    )


def is_valid_template_id(template_id: str) -> bool:
    return bool(re.fullmatch(TEMPLATE_ID_PATTERN, template_id or ""))


def parse_template_file(path: Path) -> Template:
    try:
        return Template.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise TemplateStoreError(f"Failed to parse template from {path}: {exc}") from exc


SOURCE_PRIORITIES = ("auto", "builtin", "local")


class TemplateStore:
    """Resolves template ids against a local JSON directory and the built-in catalog.

    ``source`` picks where to look: ``auto`` tries the local directory first and falls
    back to the catalog, ``local`` and ``builtin`` consult only that one place.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else None

    def local_file(self, template_id: str) -> Path | None:
        if self.root is None or not is_valid_template_id(template_id):
            return None
        path = self.root / f"{template_id}.json"
        return path if path.is_file() else None

    def _resolve_local(self, template_id: str) -> Template | None:
        path = self.local_file(template_id)
        if path is None:
            return None
        try:
            return parse_template_file(path)
        except TemplateStoreError as exc:
            log_event(logger, "template_unreadable", level=logging.WARNING, template_id=template_id, reason=str(exc))
            return None

    def resolve(self, template_id: str, source: str = "auto") -> tuple[Template, str]:
        if source not in SOURCE_PRIORITIES:
            raise TemplateStoreError(f"Unknown template source '{source}' (choose from {', '.join(SOURCE_PRIORITIES)}).")
        if source in {"auto", "local"}:
            template = self._resolve_local(template_id)
            if template is not None:
                return template, "local"
        if source in {"auto", "builtin"}:
            template = BUILTIN_TEMPLATES.get(template_id)
            if template is not None:
                return template, "builtin"
        raise UnknownTemplate(template_id, source=source)

    def load(self, template_id: str, source: str = "auto") -> Template:
        template, _source = self.resolve(template_id, source)
        return template

    def list_templates(self, source: str = "all") -> list[TemplateSummary]:
        summaries: list[TemplateSummary] = []
        if source in {"all", "builtin"}:
            summaries.extend(summarize(BUILTIN_TEMPLATES[tid], "builtin") for tid in builtin_template_ids())
        if source in {"all", "local"} and self.root is not None and self.root.is_dir():
            for path in sorted(self.root.glob("*.json")):
                try:
                    template = parse_template_file(path)
                except TemplateStoreError as exc:
                    log_event(logger, "template_unreadable", level=logging.WARNING, path=str(path), reason=str(exc))
                    continue
                summaries.append(summarize(template, "local"))
        return summaries

    def import_template(self, path: Path, force: bool = False) -> TemplateSummary:
        if self.root is None:
            raise TemplateStoreError("No local template directory is configured.")
        template = parse_template_file(Path(path))
        destination = self.root / f"{template.id}.json"
        if destination.exists() and not force:
            raise TemplateStoreError(f"Template '{template.id}' already exists (use force to overwrite).")
        self.root.mkdir(parents=True, exist_ok=True)
        destination.write_text(template.model_dump_json(indent=2), encoding="utf-8")
        log_event(logger, "template_imported", template_id=template.id, path=str(destination))
        return summarize(template, "local")

    def export_template(
        self, template_id: str, destination: Path, overwrite: bool = False, source: str = "auto"
    ) -> Path:
        template, resolved_from = self.resolve(template_id, source)
        destination = Path(destination)
        if destination.is_dir():
            destination = destination / f"{template.id}.json"
        if destination.exists() and not overwrite:
            raise TemplateStoreError(f"{destination} already exists (use overwrite).")
        destination.parent.mkdir(parents=True, exist_ok=True)
        local_path = self.local_file(template_id)
        if resolved_from == "local" and local_path is not None:
            shutil.copyfile(local_path, destination)
        else:
            destination.write_text(json.dumps(template.model_dump(), indent=2), encoding="utf-8")
        log_event(logger, "template_exported", template_id=template.id, path=str(destination), source=resolved_from)
        return destination
