from __future__ import annotations

from typing import Any


class PlanError(ValueError):
    """Base class for every structured planning failure."""

    code = "plan_error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.extra}


class UnknownKey(PlanError):
    code = "unknown_key"


class UnknownTemplate(PlanError):
    code = "unknown_template"

    def __init__(self, template_id: str, source: str = "auto") -> None:
        where = "local or built-in" if source == "auto" else source
        super().__init__(f"Template '{template_id}' was not found ({where}).", template_id=template_id, source=source)
        self.template_id = template_id
        self.source = source


class InvalidStyleProfile(PlanError):
    code = "invalid_style_profile"

    def __init__(self, problems: list[str]) -> None:
        super().__init__("Style profile is invalid: " + "; ".join(problems), problems=list(problems))
        self.problems = list(problems)


class InsufficientDepth(PlanError):
    code = "insufficient_depth"

    def __init__(self, max_depth: int, total_bars: int) -> None:
        super().__init__(
            f"max_depth ({max_depth}) is smaller than the template's {total_bars} bars.",
            max_depth=max_depth,
            total_bars=total_bars,
        )
        self.max_depth = max_depth
        self.total_bars = total_bars


class NoViableContinuation(PlanError):
    code = "no_viable_continuation"

    def __init__(self, depth: int) -> None:
        super().__init__(
            f"No beam node could be continued at bar {depth + 1}; relax reharm_depth or max_chord_complexity and retry.",
            depth=depth,
            bar=depth + 1,
        )
        self.depth = depth


class Cancelled(PlanError):
    code = "cancelled"

    def __init__(self, depth: int) -> None:
        super().__init__(f"Planning was cancelled before bar {depth + 1}.", depth=depth)
        self.depth = depth


class TemplateStoreError(ValueError):
    pass
