"""Pipeline orchestrator: runs stages in order and records their outcomes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from ..errors import DeployerError, PipelineInterrupted
from ..utils.logging import log_success
from .models import PipelineContext, PipelineRun, StageOutcome

if TYPE_CHECKING:
    from ..stages import Stage

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    Linear, fail-fast pipeline.

    Each stage either succeeds (the next one starts) or raises a
    ``DeployerError`` (the run halts and every later stage is recorded as
    skipped). Nothing is retried; a fresh invocation is the retry mechanism.
    """

    def __init__(self, stages: Sequence["Stage"]) -> None:
        self.stages = list(stages)
        self.error: Optional[DeployerError] = None

    def run(self, ctx: PipelineContext, run: PipelineRun) -> PipelineRun:
        total = len(self.stages)
        logger.info("=" * 60)
        logger.info("%s run %s (%d stages)", run.mode.upper(), run.run_id, total)
        logger.info("=" * 60)

        for index, stage in enumerate(self.stages):
            logger.info("[%d/%d] %s", index + 1, total, stage.title)
            try:
                message = stage.run(ctx)
            except KeyboardInterrupt:
                self.error = PipelineInterrupted(f"Interrupted during {stage.title}", stage=stage.stage_id)
                logger.error("Interrupted during stage %s; remote state is left as-is", stage.stage_id)
                run.record(StageOutcome.failed(stage.stage_id, "interrupted"))
                self._skip_rest(run, index, "interrupted")
                run.finish(interrupted=True)
                break
            except DeployerError as exc:
                exc.stage = exc.stage or stage.stage_id
                self.error = exc
                logger.error("%s failed: %s", stage.title, exc)
                run.record(StageOutcome.failed(stage.stage_id, str(exc)))
                self._skip_rest(run, index, f"{stage.stage_id} failed")
                run.finish()
                break
            except Exception as exc:
                # Not an operational failure: keep the traceback.
                logger.exception("%s crashed", stage.title)
                self.error = DeployerError(f"Unexpected error: {exc}", stage=stage.stage_id)
                run.record(StageOutcome.failed(stage.stage_id, str(self.error)))
                self._skip_rest(run, index, f"{stage.stage_id} failed")
                run.finish()
                break
            else:
                log_success(logger, "%s: %s", stage.title, message)
                run.record(StageOutcome.succeeded(stage.stage_id, message))
        else:
            run.finish()

        self._report(ctx, run)
        return run

    def _skip_rest(self, run: PipelineRun, index: int, reason: str) -> None:
        for stage in self.stages[index + 1:]:
            run.record(StageOutcome.skipped(stage.stage_id, reason))

    def _report(self, ctx: PipelineContext, run: PipelineRun) -> None:
        logger.info("=" * 60)
        for warning in ctx.warnings:
            logger.warning("warning: %s", warning)
        if run.succeeded:
            log_success(logger, "%s completed successfully", run.mode.capitalize())
        elif run.interrupted:
            logger.error("%s interrupted", run.mode.capitalize())
        else:
            failure = run.failure
            logger.error("%s failed at %s: %s", run.mode.capitalize(), failure.stage_id, failure.message)
        logger.info("=" * 60)
        if run.log_path:
            self._save_summary(run, Path(run.log_path).with_suffix(".json"))

    def _save_summary(self, run: PipelineRun, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(run.to_dict(), f, indent=2, ensure_ascii=False)
        logger.debug("Run summary saved to %s", path)
