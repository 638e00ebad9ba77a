from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

from harmony_planner.logging_utils import elapsed_ms, log_event
from harmony_planner.models import BarSlot, StateSnapshot, Template
from harmony_planner.services.candidates import Candidate, CandidateGenerator, HarmonicState
from harmony_planner.services.cost_model import CostModel, unconventionality_penalty
from harmony_planner.services.errors import (
    Cancelled,
    InsufficientDepth,
    InvalidStyleProfile,
    NoViableContinuation,
    PlanError,
)
from harmony_planner.services.explain import ExplainRecorder
from harmony_planner.services.key_context import KeyContext
from harmony_planner.services.style import StyleProfile

logger = logging.getLogger(__name__)


class PlannerPhase(str, Enum):
    INITIALIZING = "initializing"
    SEARCHING = "searching"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ChordChoice:
    parent: int | None
    candidate: Candidate
    step_cost: float
    depth: int


class ChoiceArena:
    """Append-only store of chord choices; beam nodes keep an index into it."""

    def __init__(self) -> None:
        self._choices: list[ChordChoice] = []

    def __len__(self) -> int:
        return len(self._choices)

    def __getitem__(self, index: int) -> ChordChoice:
        return self._choices[index]

    def append(self, choice: ChordChoice) -> int:
        self._choices.append(choice)
        return len(self._choices) - 1

    def path(self, index: int | None) -> list[ChordChoice]:
        path: list[ChordChoice] = []
        while index is not None:
            choice = self._choices[index]
            path.append(choice)
            index = choice.parent
        path.reverse()
        return path


@dataclass(frozen=True)
class BeamNode:
    state: HarmonicState
    cost: float = 0.0
    choice_index: int | None = None
    parent_rank: int | None = None
    unconventionality: float = 0.0


@dataclass(frozen=True)
class _Expansion:
    parent_rank: int
    parent_choice: int | None
    candidate: Candidate
    state: HarmonicState
    step_cost: float
    cost: float
    unconventionality: float

    @property
    def ranking_key(self) -> tuple[float, float, int, str]:
        return (self.cost, self.unconventionality, self.state.modulation_count, self.candidate.symbol)


@dataclass
class SearchResult:
    path: list[ChordChoice]
    total_cost: float
    snapshots: list[StateSnapshot] = field(default_factory=list)
    beam_sizes: list[int] = field(default_factory=list)


class BeamSearchPlanner:
    """Depth-by-depth beam search over the flattened bar slots of a template."""

    def __init__(
        self,
        template: Template,
        key: KeyContext,
        profile: StyleProfile,
        *,
        generator: CandidateGenerator | None = None,
        cost_model: CostModel | None = None,
        workers: int = 1,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.template = template
        self.key = key
        self.profile = profile
        self.generator = generator or CandidateGenerator()
        self.cost_model = cost_model or CostModel(profile)
        self.workers = max(1, workers)
        self.cancel_event = cancel_event
        self.recorder = ExplainRecorder(profile.explain_mode)
        self.arena = ChoiceArena()
        self.phase = PlannerPhase.INITIALIZING
        self.depth = 0
        self.beam_sizes: list[int] = []

    def _initialize(self) -> tuple[list[BarSlot], list[BeamNode]]:
        problems = self.profile.problems()
        if problems:
            raise InvalidStyleProfile(problems)
        slots = self.template.slots()
        if self.profile.max_depth < len(slots):
            raise InsufficientDepth(self.profile.max_depth, len(slots))
        return slots, [BeamNode(state=HarmonicState.opening(self.key))]

    def _expand_node(
        self, parent_rank: int, node: BeamNode, slot: BarSlot, upcoming: BarSlot | None
    ) -> list[_Expansion]:
        expansions: list[_Expansion] = []
        for candidate in self.generator.candidates(node.state, slot, self.profile):
            step_cost = self.cost_model.cost(node.state, candidate, slot, upcoming)
            expansions.append(
                _Expansion(
                    parent_rank=parent_rank,
                    parent_choice=node.choice_index,
                    candidate=candidate,
                    state=node.state.advance(candidate),
                    step_cost=step_cost,
                    cost=node.cost + step_cost,
                    unconventionality=unconventionality_penalty(candidate),
                )
            )
        return expansions

    def _expand(
        self,
        beam: list[BeamNode],
        slot: BarSlot,
        upcoming: BarSlot | None,
        executor: ThreadPoolExecutor | None,
    ) -> list[_Expansion]:
        if executor is None:
            groups = [self._expand_node(rank, node, slot, upcoming) for rank, node in enumerate(beam)]
        else:
            # map() yields in submission order, so the pool stays in node order.
            groups = list(
                executor.map(lambda item: self._expand_node(item[0], item[1], slot, upcoming), enumerate(beam))
            )
        return [expansion for group in groups for expansion in group]

    def _commit(self, expansion: _Expansion, depth: int) -> BeamNode:
        index = self.arena.append(
            ChordChoice(
                parent=expansion.parent_choice,
                candidate=expansion.candidate,
                step_cost=expansion.step_cost,
                depth=depth,
            )
        )
        return BeamNode(
            state=expansion.state,
            cost=expansion.cost,
            choice_index=index,
            parent_rank=expansion.parent_rank,
            unconventionality=expansion.unconventionality,
        )

    def run(self) -> SearchResult:
        started = time.perf_counter()
        try:
            slots, beam = self._initialize()
            self.phase = PlannerPhase.SEARCHING
            log_event(
                logger,
                "plan_search_started",
                template_id=self.template.id,
                bars=len(slots),
                key=self.key.label,
                beam_width=self.profile.beam_width,
                workers=self.workers,
            )
            executor = ThreadPoolExecutor(max_workers=self.workers) if self.workers > 1 else None
            try:
                for depth, slot in enumerate(slots):
                    self.depth = depth
                    if self.cancel_event is not None and self.cancel_event.is_set():
                        raise Cancelled(depth)
                    upcoming = slots[depth + 1] if depth + 1 < len(slots) else None
                    pool = self._expand(beam, slot, upcoming, executor)
                    if not pool:
                        raise NoViableContinuation(depth)
                    pool.sort(key=lambda expansion: expansion.ranking_key)
                    beam = [self._commit(expansion, depth) for expansion in pool[: self.profile.beam_width]]
                    self.beam_sizes.append(len(beam))
                    self.recorder.record_depth(beam, self.arena)
                    log_event(
                        logger,
                        "plan_depth_pruned",
                        level=logging.DEBUG,
                        depth=depth,
                        role=slot.role,
                        pool_size=len(pool),
                        beam_size=len(beam),
                        best_cost=round(beam[0].cost, 6),
                    )
            finally:
                if executor is not None:
                    executor.shutdown(wait=True)
        except PlanError as exc:
            self.phase = PlannerPhase.FAILED
            log_event(
                logger,
                "plan_failed",
                level=logging.WARNING,
                template_id=self.template.id,
                code=exc.code,
                depth=self.depth,
                reason=str(exc),
            )
            raise

        self.phase = PlannerPhase.COMPLETED
        winner = beam[0]
        path = self.arena.path(winner.choice_index)
        self.recorder.record_winning_path(path)
        log_event(
            logger,
            "plan_completed",
            template_id=self.template.id,
            bars=len(path),
            total_cost=round(winner.cost, 6),
            modulations=winner.state.modulation_count,
            duration_ms=elapsed_ms(started),
        )
        return SearchResult(
            path=path,
            total_cost=winner.cost,
            snapshots=self.recorder.snapshots,
            beam_sizes=list(self.beam_sizes),
        )
