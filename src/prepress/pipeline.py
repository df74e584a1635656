"""
Page Pipeline
=============
Sequences the engine stages for one page and assembles the report.

The configuration is turned into an explicit, ordered list of steps (a small
tagged union of frozen dataclasses). ``run_steps`` dispatches each step
through a handler table, so adding a stage means adding one dataclass and
one handler.

Usage:
    reference = ReferenceStatistics.from_buffer(hero_page)   # once per batch
    result = process_page(page, EngineConfig(), reference)
    result.buffer, result.report
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from . import report_log
from .buffer import PixelBuffer
from .cmyk import CmykSeparation, cmyk_to_rgb_preview, convert_to_cmyk
from .errors import ReferenceNotReady
from .matte import apply_matte_compensation
from .quality import QAReport, audit
from .settings import CmykConfig, EngineConfig, MatteConfig
from .stats import ReferenceStatistics
from .tone import (
    apply_levels,
    local_clarity,
    match_reference,
    paper_grain,
    remove_cast,
    selective_saturation,
)

logger = logging.getLogger(__name__)


# ============================================================================
# STEPS
# ============================================================================

@dataclass(frozen=True)
class CastRemovalStep:
    strength: float
    border_fraction: float


@dataclass(frozen=True)
class LevelsStep:
    black_point: float
    white_point: float
    gamma: float = 1.0


@dataclass(frozen=True)
class SaturationStep:
    red_yellow_boost: float
    blue_green_reduce: float
    protect_skin: bool = True


@dataclass(frozen=True)
class ClarityStep:
    radius: float
    amount: float


@dataclass(frozen=True)
class ReferenceMatchStep:
    reference: ReferenceStatistics
    strength: float


@dataclass(frozen=True)
class GrainStep:
    strength: float
    seed: int = 0


@dataclass(frozen=True)
class MatteStep:
    config: MatteConfig


@dataclass(frozen=True)
class PrepressStep:
    config: CmykConfig


PipelineStep = Union[
    CastRemovalStep,
    LevelsStep,
    SaturationStep,
    ClarityStep,
    ReferenceMatchStep,
    GrainStep,
    MatteStep,
    PrepressStep,
]

STEP_NAMES = {
    CastRemovalStep: "cast_removal",
    LevelsStep: "levels",
    SaturationStep: "saturation",
    ClarityStep: "clarity",
    ReferenceMatchStep: "reference_match",
    GrainStep: "grain",
    MatteStep: "matte",
    PrepressStep: "prepress",
}


def step_name(step: PipelineStep) -> str:
    return STEP_NAMES[type(step)]


def build_steps(
    config: EngineConfig,
    reference: Optional[ReferenceStatistics] = None,
) -> List[PipelineStep]:
    """Ordered step list for ``config``. Raises ReferenceNotReady early."""
    color = config.color
    if color.match_reference and reference is None:
        raise ReferenceNotReady("match_reference is enabled but no ReferenceStatistics was supplied")

    steps: List[PipelineStep] = []
    if color.remove_cast:
        steps.append(CastRemovalStep(color.cast_strength, color.border_fraction))
    if color.apply_levels:
        steps.append(LevelsStep(color.black_point, color.white_point, color.midtone_gamma))
    if color.apply_saturation:
        steps.append(SaturationStep(color.red_yellow_boost, color.blue_green_reduce,
                                    color.protect_skin_tones))
    if color.apply_clarity:
        steps.append(ClarityStep(color.clarity_radius, color.clarity_amount))
    if color.match_reference:
        steps.append(ReferenceMatchStep(reference, color.match_strength))
    if color.add_grain:
        steps.append(GrainStep(color.grain_strength, color.grain_seed))
    if config.matte.enabled:
        steps.append(MatteStep(config.matte))
    if config.cmyk is not None:
        steps.append(PrepressStep(config.cmyk))
    return steps


# ============================================================================
# EXECUTION
# ============================================================================

@dataclass(frozen=True)
class PipelineResult:
    """
    Output of one page.

    ``buffer`` is RGB, or 4-channel CMYK when a prepress step ran; in that case
    ``separation`` holds the float ink planes and ``preview`` the RGB preview
    the audit was run against.
    """
    buffer: PixelBuffer
    report: QAReport
    separation: Optional[CmykSeparation] = None
    preview: Optional[PixelBuffer] = None
    steps: Tuple[str, ...] = ()


_Handler = Callable[[PipelineStep, PixelBuffer], PixelBuffer]

_HANDLERS: Dict[type, _Handler] = {
    CastRemovalStep: lambda s, buf: remove_cast(buf, s.strength, s.border_fraction),
    LevelsStep: lambda s, buf: apply_levels(buf, s.black_point, s.white_point, s.gamma),
    SaturationStep: lambda s, buf: selective_saturation(
        buf, s.red_yellow_boost, s.blue_green_reduce, s.protect_skin),
    ClarityStep: lambda s, buf: local_clarity(buf, s.radius, s.amount),
    ReferenceMatchStep: lambda s, buf: match_reference(buf, s.reference, s.strength),
    GrainStep: lambda s, buf: paper_grain(buf, s.strength, seed=s.seed),
    MatteStep: lambda s, buf: apply_matte_compensation(buf, s.config),
}


def run_steps(
    buffer: PixelBuffer,
    steps: List[PipelineStep],
) -> Tuple[PixelBuffer, Optional[CmykSeparation]]:
    """
    Thread ``buffer`` through ``steps``. Returns the last RGB buffer and the
    separation if a prepress step ran (it must be the final step).
    """
    separation = None
    current = buffer
    for i, step in enumerate(steps):
        if isinstance(step, PrepressStep):
            if i != len(steps) - 1:
                raise ValueError("prepress conversion must be the last pipeline step")
            separation = convert_to_cmyk(current, step.config)
            continue
        handler = _HANDLERS.get(type(step))
        if handler is None:
            raise TypeError(f"unknown pipeline step: {step!r}")
        current = handler(step, current)
    return current, separation


def process_page(
    buffer: PixelBuffer,
    config: Optional[EngineConfig] = None,
    reference: Optional[ReferenceStatistics] = None,
    page_id: str = "page",
) -> PipelineResult:
    """
    Full per-page run: tone -> matte -> [prepress] -> audit.

    The audit compares what will be printed (the RGB result, or the CMYK
    preview when prepress ran) with the incoming buffer.
    """
    config = config or EngineConfig()
    buffer.require_rgb("pipeline")
    start = time.time()

    try:
        steps = build_steps(config, reference)
        names = tuple(step_name(s) for s in steps)
        logger.info(f"Processing {page_id} ({buffer.width}x{buffer.height}): {' -> '.join(names) or 'audit only'}")

        rgb, separation = run_steps(buffer, steps)
        if separation is not None:
            preview = cmyk_to_rgb_preview(separation)
            output = separation.to_buffer()
            audited = preview
        else:
            preview = None
            output = rgb
            audited = rgb

        report = audit(audited, buffer, config.qa)
    except Exception as exc:
        report_log.record_error(page_id, exc, (time.time() - start) * 1000)
        raise

    report_log.record_page(page_id, report, (time.time() - start) * 1000, names)
    return PipelineResult(
        buffer=output,
        report=report,
        separation=separation,
        preview=preview,
        steps=names,
    )
