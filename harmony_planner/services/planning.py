from __future__ import annotations

import logging
import threading

from harmony_planner.config import get_settings
from harmony_planner.logging_utils import log_event
from harmony_planner.models import KeySpecification, PlanRequest, PlanResponse, Template
from harmony_planner.services.assembler import PlanAssembler
from harmony_planner.services.candidates import CandidateGenerator
from harmony_planner.services.errors import PlanError
from harmony_planner.services.key_context import KeyContext
from harmony_planner.services.planner import BeamSearchPlanner
from harmony_planner.services.style import StyleProfile, profile_from_specification
from harmony_planner.services.templates import TemplateStore

logger = logging.getLogger(__name__)


def default_store() -> TemplateStore:
    return TemplateStore(get_settings().templates_dir)


def _template_for(template: str | Template, store: TemplateStore | None, source: str, origin: str) -> tuple[Template, str]:
    if isinstance(template, Template):
        return template, origin
    return (store or default_store()).resolve(template, source)


def plan(
    key_specification: KeySpecification | KeyContext,
    template: str | Template,
    style_profile: StyleProfile,
    *,
    store: TemplateStore | None = None,
    source: str = "auto",
    origin: str = "inline",
    generator: CandidateGenerator | None = None,
    cancel_event: threading.Event | None = None,
    workers: int | None = None,
) -> PlanResponse:
    """Resolve the key and template, run the beam search and assemble the response.

    ``template`` is either an id looked up in ``store`` (honouring ``source``) or a
    ``Template`` that is planned as given and reported with ``origin`` as its source.
    Every failure surfaces as a ``PlanError`` subclass; no partial plan is ever returned.
    """
    template_id = template.id if isinstance(template, Template) else template
    try:
        if isinstance(key_specification, KeyContext):
            key = key_specification
        else:
            key = KeyContext.from_specification(key_specification)
        resolved, resolved_from = _template_for(template, store, source, origin)
    except PlanError as exc:
        log_event(logger, "plan_failed", level=logging.WARNING, template_id=template_id, code=exc.code, reason=str(exc))
        raise

    planner = BeamSearchPlanner(
        resolved,
        key,
        style_profile,
        generator=generator,
        workers=workers if workers is not None else get_settings().planner_workers,
        cancel_event=cancel_event,
    )
    result = planner.run()
    return PlanAssembler(resolved, resolved_from, key, style_profile).assemble(result)


def plan_from_request(request: PlanRequest, *, store: TemplateStore | None = None) -> PlanResponse:
    profile = profile_from_specification(request.style, request.explain)
    return plan(request.key, request.template_ref, profile, store=store)
