# src/arcweaver/orchestration/controller.py
"""Batch generation controller.

Drives ``count`` consecutive chapters for one novel. Each iteration
re-reads the persisted chapter count, gives the act planner a chance to
extend the outline, writes and saves one chapter, and lints it for plot
leakage. Every ``revision_interval`` saved chapters the outline reviser
adapts the unwritten part of the chapter plan.
"""

from __future__ import annotations

from datetime import datetime, timezone

from arcweaver.agents.act_planner import ActPlanner
from arcweaver.agents.chapter_writer import ChapterWriter
from arcweaver.agents.outline_reviser import OutlineReviser
from arcweaver.config import ControllerConfig, LeakageConfig, config
from arcweaver.core.logging import get_logger
from arcweaver.core.logs import EventType, Priority, get_event_logger
from arcweaver.errors import BatchAlreadyRunningError, NovelNotFoundError
from arcweaver.models import (
    BatchResult,
    BatchState,
    BatchStatus,
    PlanningFailed,
)
from arcweaver.outline import (
    check_compliance,
    combine_with_revised_outline,
    extract_future_outline,
    with_detailed_text,
)
from arcweaver.ports import CompletionClient, NovelRepository

from .state import BatchRegistry, NovelBatchContainer

logger = get_logger(__name__)
event_logger = get_event_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _Revisions:
    """Prose written since the last outline revision."""

    def __init__(self) -> None:
        self.chapters: list[str] = []
        self.first_chapter: int | None = None

    def add(self, chapter_number: int, content: str) -> None:
        if self.first_chapter is None:
            self.first_chapter = chapter_number
        self.chapters.append(f"--- 第 {chapter_number} 章 ---\n\n{content}")

    def __len__(self) -> int:
        return len(self.chapters)

    def take(self) -> tuple[str, int]:
        content = "\n\n".join(self.chapters)
        first = self.first_chapter or 0
        self.chapters = []
        self.first_chapter = None
        return content, first


class BatchGenerationController:
    """Runs chapter generation batches, one at a time per novel."""

    def __init__(
        self,
        repository: NovelRepository,
        client: CompletionClient,
        *,
        planner: ActPlanner | None = None,
        writer: ChapterWriter | None = None,
        reviser: OutlineReviser | None = None,
        settings: ControllerConfig | None = None,
        leakage: LeakageConfig | None = None,
        registry: BatchRegistry | None = None,
    ) -> None:
        self.repository = repository
        self.client = client
        self.planner = planner or ActPlanner(repository, client)
        self.writer = writer or ChapterWriter(repository, client)
        self.reviser = reviser or OutlineReviser(repository, client)
        self.settings = settings or config.controller
        self.leakage = leakage or config.leakage
        self.registry = registry or BatchRegistry()

    def status(self, novel_id: int) -> BatchState:
        """Return the current (or most recent, until reset) batch state."""
        return self.registry.status(novel_id)

    def cancel(self, novel_id: int) -> bool:
        """Ask the running batch to stop before its next chapter."""
        cancelled = self.registry.request_cancel(novel_id)
        if cancelled:
            event_logger.info(
                "Cancellation requested",
                event_type=EventType.BATCH_CANCELLED,
                novel_id=novel_id,
                component=__name__,
            )
        return cancelled

    async def generate_batch(
        self, novel_id: int, count: int, user_prompt: str | None = None
    ) -> BatchResult:
        """Generate ``count`` chapters for ``novel_id``.

        Parameters
        ----------
        novel_id:
            Novel to extend.
        count:
            Number of chapters to attempt.
        user_prompt:
            Extra instruction applied to the first chapter only.

        Returns
        -------
        BatchResult
            Completed, aborted (empty chapter), cancelled or failed. Chapters
            saved before an abort or failure stay saved.

        Raises
        ------
        BatchAlreadyRunningError
            If a batch for this novel is already in progress.
        NovelNotFoundError
            If the novel does not exist.
        ValueError
            If ``count`` is not positive.
        """
        if count < 1:
            raise ValueError("count must be at least 1")
        container = self.registry.container(novel_id)
        if container.busy:
            raise BatchAlreadyRunningError(novel_id)

        async with container.lock:
            if await self.repository.get_novel(novel_id) is None:
                self.registry.discard(container)
                raise NovelNotFoundError(novel_id)
            state = BatchState(
                novel_id=novel_id,
                chapters_to_generate=count,
                status=BatchStatus.PREPARING,
                current_step=f"准备生成 {count} 个新章节...",
                user_prompt=user_prompt,
                started_at=_now(),
            )
            container.begin(state)
            result = BatchResult(
                novel_id=novel_id, status=BatchStatus.PREPARING, chapters_requested=count
            )
            event_logger.info(
                f"Batch started: {count} chapters",
                event_type=EventType.BATCH_START,
                priority=Priority.HIGH,
                novel_id=novel_id,
                component=__name__,
            )
            try:
                await self._run(container, state, result)
                reset_delay = self.settings.success_reset_delay
            except Exception as exc:
                reset_delay = self.settings.error_reset_delay
                self._fail(state, result, exc)
            finally:
                state.finished_at = _now()
                state.current_novel_snapshot = None

        container.schedule_reset(reset_delay)
        return result

    async def _run(
        self, container: NovelBatchContainer, state: BatchState, result: BatchResult
    ) -> None:
        novel_id = state.novel_id
        count = state.chapters_to_generate
        pending = _Revisions()

        for i in range(count):
            if container.cancel_event.is_set():
                self._finish(state, result, BatchStatus.CANCELLED)
                event_logger.warning(
                    f"Batch cancelled after {state.chapters_completed} of {count} chapters",
                    event_type=EventType.BATCH_CANCELLED,
                    novel_id=novel_id,
                    component=__name__,
                )
                return

            state.iteration = i
            state.status = BatchStatus.PREPARING
            next_chapter = await self.repository.get_chapter_count(novel_id) + 1
            state.current_chapter = next_chapter
            state.current_step = f"(第 {i + 1}/{count} 章) 正在生成第 {next_chapter} 章..."
            prompt = state.user_prompt if i == 0 else None

            outcome = await self.planner.maybe_plan_next_act(novel_id)
            result.planning_outcomes.append(outcome)
            if isinstance(outcome, PlanningFailed):
                logger.warning(
                    "Act planning failed before chapter %d; continuing with the current outline: %s",
                    next_chapter,
                    outcome.error,
                )

            novel = await self.repository.get_novel(novel_id)
            if novel is None:
                raise NovelNotFoundError(novel_id)
            state.current_novel_snapshot = novel
            previous = await self.repository.get_latest_chapter(novel_id)

            state.status = BatchStatus.GENERATING
            draft = await self.writer.write_chapter(novel, next_chapter, prompt, previous)
            if draft is None or draft.is_empty:
                if pending:
                    await self._revise(state, result, pending)
                self._abort(state, result, next_chapter)
                return

            state.status = BatchStatus.PERSISTING
            await self.repository.save_chapter(
                novel_id, next_chapter, draft.title, draft.content, draft.word_count
            )
            state.chapters_completed += 1
            result.chapters_completed = state.chapters_completed
            result.saved_chapters.append(next_chapter)
            event_logger.info(
                f"Saved chapter {next_chapter} ({draft.word_count} characters)",
                event_type=EventType.CHAPTER_SAVED,
                novel_id=novel_id,
                component=__name__,
            )

            report = check_compliance(draft.content, next_chapter, novel.outline, self.leakage)
            result.compliance.append(report)
            if not report.compliant:
                event_logger.warning(
                    report.reason or f"Chapter {next_chapter} may leak future plot",
                    event_type=EventType.LEAKAGE_CHECK,
                    novel_id=novel_id,
                    component=__name__,
                    metadata={"confidence": report.confidence, "concepts": report.matched_concepts},
                )

            pending.add(next_chapter, draft.content)
            if len(pending) >= self.settings.revision_interval:
                await self._revise(state, result, pending)

        if pending:
            await self._revise(state, result, pending)

        await self.repository.record_expansion(novel_id)
        self._finish(state, result, BatchStatus.COMPLETED)
        event_logger.info(
            f"Batch complete: {state.chapters_completed} chapters",
            event_type=EventType.BATCH_COMPLETE,
            priority=Priority.HIGH,
            novel_id=novel_id,
            component=__name__,
        )

    async def _revise(self, state: BatchState, result: BatchResult, pending: _Revisions) -> None:
        novel_id = state.novel_id
        content, first_chapter = pending.take()
        novel = await self.repository.get_novel(novel_id)
        if novel is None:
            raise NovelNotFoundError(novel_id)
        next_chapter = await self.repository.get_chapter_count(novel_id) + 1
        detailed = novel.outline.detailed_text
        future = extract_future_outline(detailed, next_chapter)
        if not future:
            logger.debug("No chapter plan beyond chapter %d; skipping outline revision", next_chapter - 1)
            return

        state.current_step = f"第 {first_chapter}-{next_chapter - 1} 章批次完成，正在执行大纲动态修正..."
        revised = await self.reviser.run_revision_cycle(novel, content, future, first_chapter)
        if revised.strip() == future.strip():
            return
        combined = combine_with_revised_outline(detailed, revised, next_chapter)
        await self.repository.save_outline(novel_id, with_detailed_text(novel.outline, combined))
        result.outline_revisions += 1
        logger.info("Revised chapter plan from chapter %d for novel %s", next_chapter, novel_id)

    def _abort(self, state: BatchState, result: BatchResult, chapter_number: int) -> None:
        reason = f"第{chapter_number}章内容生成为空，任务中止"
        state.abort_reason = reason
        result.abort_reason = reason
        self._finish(state, result, BatchStatus.ABORTED)
        event_logger.warning(
            reason,
            event_type=EventType.BATCH_ABORTED,
            novel_id=state.novel_id,
            component=__name__,
            metadata={"chapters_completed": state.chapters_completed},
        )

    def _fail(self, state: BatchState, result: BatchResult, exc: Exception) -> None:
        state.error = str(exc)
        result.error = str(exc)
        self._finish(state, result, BatchStatus.FAILED)
        event_logger.error(
            f"Batch failed after {state.chapters_completed} chapters: {exc}",
            event_type=EventType.BATCH_FAILED,
            novel_id=state.novel_id,
            component=__name__,
        )
        logger.debug("Batch failure traceback", exc_info=exc)

    @staticmethod
    def _finish(state: BatchState, result: BatchResult, status: BatchStatus) -> None:
        state.status = status
        result.status = status
        result.chapters_completed = state.chapters_completed
        state.current_step = {
            BatchStatus.COMPLETED: "全部新章节已生成完毕",
            BatchStatus.ABORTED: state.abort_reason or "任务中止",
            BatchStatus.CANCELLED: "任务已取消",
            BatchStatus.FAILED: f"续写时发生错误: {state.error}",
        }.get(status, state.current_step)


__all__ = ["BatchGenerationController"]
