from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from harmony_planner.logging_utils import (
    clear_request_context,
    configure_logging,
    current_request_id,
    elapsed_ms,
    log_event,
    new_request_id,
    set_request_context,
)
from harmony_planner.models import PlanRequest, PlanResponse, Template, TemplateSourcePriority, TemplateSummary
from harmony_planner.services.errors import PlanError, UnknownTemplate
from harmony_planner.services.planning import default_store, plan
from harmony_planner.services.style import preset_table, profile_from_specification

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Harmony Planner")


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    set_request_context(request_id=request_id, route=request.url.path, method=request.method)
    started = time.perf_counter()
    log_event(logger, "request_started")
    try:
        response = await call_next(request)
    except Exception:
        log_event(logger, "request_completed", status_code=500, duration_ms=elapsed_ms(started))
        raise

    log_event(logger, "request_completed", status_code=response.status_code, duration_ms=elapsed_ms(started))
    response.headers["X-Request-ID"] = request_id
    clear_request_context()
    return response


@app.exception_handler(Exception)
async def global_exception_handler(_request: Request, exc: Exception):
    request_id = current_request_id()
    logger.exception(
        "unhandled_exception",
        extra={"event": "unhandled_exception", "request_id": request_id},
    )
    response = JSONResponse(
        status_code=500,
        content={
            "detail": "Something went wrong while processing your request. Please try again.",
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )
    clear_request_context()
    return response


def _handle_plan_error(action: str, exc: PlanError) -> HTTPException:
    status_code = 404 if isinstance(exc, UnknownTemplate) else 422
    log_event(logger, "request_failed", level=logging.WARNING, action=action, code=exc.code, reason=str(exc))
    return HTTPException(
        status_code=status_code,
        detail={**exc.to_detail(), "request_id": current_request_id()},
    )


@app.post("/api/plan", response_model=PlanResponse)
def plan_endpoint(payload: PlanRequest):
    log_event(
        logger,
        "plan_request_received",
        template_id=payload.template.id if payload.template is not None else payload.template_id,
        inline_template=payload.template is not None,
        tonic=str(payload.key.tonic),
        mode=payload.key.mode,
        preset=payload.style.preset,
        explain=payload.explain,
    )
    try:
        profile = profile_from_specification(payload.style, payload.explain)
        return plan(payload.key, payload.template_ref, profile, store=default_store())
    except PlanError as exc:
        raise _handle_plan_error("Harmony planning", exc) from exc


@app.get("/api/templates", response_model=list[TemplateSummary])
def list_templates_endpoint(source: str = "all"):
    if source not in {"all", "builtin", "local"}:
        raise HTTPException(
            status_code=422,
            detail={"message": "source must be one of all, builtin, local.", "request_id": current_request_id()},
        )
    return default_store().list_templates(source)


@app.get("/api/templates/{template_id}", response_model=Template)
def get_template_endpoint(template_id: str, source: TemplateSourcePriority = "auto"):
    try:
        return default_store().load(template_id, source)
    except PlanError as exc:
        raise _handle_plan_error("Template lookup", exc) from exc


@app.get("/api/styles")
def list_styles_endpoint() -> dict[str, dict[str, object]]:
    return preset_table()
