# src/arcweaver/agents/act_planner.py
"""Act planner: extends the chapter plan one arc stage at a time."""

from __future__ import annotations

from arcweaver.config import LLMConfig, PlannerConfig, config
from arcweaver.core.logging import get_logger
from arcweaver.core.logs import EventType, Priority, get_event_logger, log_calls
from arcweaver.errors import OutlinePlanningError
from arcweaver.models import (
    ArcStage,
    NovelSnapshot,
    OutlineDocument,
    PlanningFailed,
    PlanningOutcome,
    PlanningPlanned,
    PlanningSkipped,
    SkipReason,
)
from arcweaver.outline import (
    append_detailed,
    clean_generated_outline,
    get_next_stage,
    get_outline_for_range,
)
from arcweaver.ports import CompletionClient, NovelRepository

from .base import Agent

logger = get_logger(__name__)
event_logger = get_event_logger()


class ActPlanner(Agent):
    """Writes the per-chapter plan for the next arc stage when runway is short.

    Every precondition that is not met ends in :class:`PlanningSkipped`;
    the outline is only touched when the next stage is unambiguous and not
    yet planned, which makes repeated calls a no-op.
    """

    def __init__(
        self,
        repository: NovelRepository,
        client: CompletionClient,
        *,
        settings: PlannerConfig | None = None,
        llm: LLMConfig | None = None,
    ) -> None:
        super().__init__(repository, client, llm=llm)
        self.settings = settings or config.planner

    @log_calls
    async def maybe_plan_next_act(self, novel_id: int) -> PlanningOutcome:
        """Plan the next act for ``novel_id`` if the outline needs it."""
        try:
            outcome = await self._plan(novel_id)
        except Exception as exc:
            event_logger.error(
                f"Act planning failed: {exc}",
                event_type=EventType.PLANNING,
                novel_id=novel_id,
                component=__name__,
            )
            return PlanningFailed(error=str(exc))

        if isinstance(outcome, PlanningSkipped):
            event_logger.debug(
                f"Act planning skipped ({outcome.reason.value}): {outcome.message}",
                event_type=EventType.PLANNING_SKIPPED,
                novel_id=novel_id,
                component=__name__,
            )
        return outcome

    async def _plan(self, novel_id: int) -> PlanningOutcome:
        novel = await self.repository.get_novel(novel_id)
        if novel is None:
            return PlanningSkipped(
                reason=SkipReason.NOVEL_NOT_FOUND, message=f"Novel {novel_id} not found"
            )
        document = novel.outline
        if document.is_empty:
            return PlanningSkipped(reason=SkipReason.NO_OUTLINE, message="Novel has no outline")

        last_planned = document.last_planned_chapter
        if last_planned is None:
            return PlanningSkipped(
                reason=SkipReason.NO_PLANNED_CHAPTERS,
                message="Chapter plan has no chapter markers",
            )

        next_chapter = await self.repository.get_chapter_count(novel_id) + 1
        buffer = last_planned - next_chapter
        if buffer > self.settings.act_planning_threshold:
            return PlanningSkipped(
                reason=SkipReason.SUFFICIENT_RUNWAY,
                message=f"{buffer} planned chapters ahead of chapter {next_chapter}",
            )

        stages = document.stages
        if len(stages) < 2:
            return PlanningSkipped(
                reason=SkipReason.TOO_FEW_STAGES,
                message=f"Outline declares {len(stages)} arc stage(s)",
            )

        completed = next((s for s in stages if s.chapter_range.end == last_planned), None)
        if completed is None:
            return PlanningSkipped(
                reason=SkipReason.AMBIGUOUS_STAGE,
                message=f"No arc stage ends at last planned chapter {last_planned}",
            )

        target = get_next_stage(stages, completed)
        if target is None:
            return PlanningSkipped(
                reason=SkipReason.FINAL_STAGE, message=f"'{completed.stage_name}' is the final act"
            )
        if target.chapter_range.start in document.planned_chapters:
            return PlanningSkipped(
                reason=SkipReason.ALREADY_PLANNED,
                message=f"'{target.stage_name}' is already planned",
            )

        return await self._plan_stage(novel, document, target)

    def context_window(self, document: OutlineDocument) -> str:
        """Return the chapter plan for the trailing chapters of the last declared stage.

        Empty when that stage has no planned chapters yet.
        """
        if not document.stages:
            return ""
        last = document.stages[-1].chapter_range
        end = last.end
        start = max(last.start, end - self.settings.context_window + 1)
        return get_outline_for_range(document.detailed_text, start, end)

    def build_prompt(self, novel: NovelSnapshot, target: ArcStage, context: str) -> str:
        """Return the head-screenwriter prompt for ``target``."""
        rng = target.chapter_range
        genre_line = ""
        if novel.genre or novel.style:
            genre_line = f"\n    小说类型: {novel.genre or '未指定'}，写作风格: {novel.style or '未指定'}。\n"
        context_block = ""
        if context:
            context_block = f"""
    **上一篇章结尾的逐章细纲（供衔接参考）:**
{context}
"""
        return f"""
    你是一位才华横溢、深谙故事节奏的总编剧。你的任务是为一部名为《{novel.name}》的小说中即将到来的一个重要篇章撰写详细的、逐章的剧情大纲。
{genre_line}
    **当前篇章的宏观规划:**
    - 篇章名称: {target.stage_name}
    - 章节范围: 第 {rng.start} 章 到 第 {rng.end} 章
    - 核心剧情概述: {target.core_summary}
{context_block}
    **你的核心原则:**
    - **放慢节奏**: 这是最高指令！你必须将上述的"核心剧情概述"分解成无数个微小的步骤、挑战、人物互动和支线任务。
    - **填充细节**: 不要让主角轻易达成目标。为他设置障碍，让他与各种人相遇，让他探索世界，让他用不止一个章节去解决一个看似简单的问题。
    - **禁止剧情飞跃**: 严禁在短短几章内完成一个重大的里程碑。

    **你的任务:**
    - 根据上述宏观规划，为这个篇章（从第 {rng.start} 章到第 {rng.end} 章）生成**全部**的**逐章节**剧情大纲。
    - 每章大纲应为50-100字的具体事件描述。

    **输出格式:**
    - 请严格使用"第X章: [剧情摘要]"的格式。
    - **只输出逐章节大纲**，不要重复宏观规划或添加任何解释性文字。
"""

    async def _plan_stage(
        self,
        novel: NovelSnapshot,
        document: OutlineDocument,
        target: ArcStage,
    ) -> PlanningPlanned:
        event_logger.info(
            f"Planning '{target.stage_name}' ({target.chapter_range})",
            event_type=EventType.PLANNING,
            priority=Priority.HIGH,
            novel_id=novel.id,
            component=__name__,
        )
        prompt = self.build_prompt(novel, target, self.context_window(document))
        temperature = self.settings.temperature
        if temperature is None:
            temperature = novel.settings.temperature
        raw = await self.call_llm(prompt, self.completion_config(temperature=temperature))

        new_detail = clean_generated_outline(raw)
        if not new_detail:
            raise OutlinePlanningError(
                f"Planner returned no chapter plan for '{target.stage_name}'"
            )

        updated = append_detailed(document, new_detail)
        await self.repository.save_outline(novel.id, updated)
        logger.info(
            "Planned %s for novel %s: %d characters of chapter plan",
            target.chapter_range,
            novel.id,
            len(new_detail),
        )
        return PlanningPlanned(
            new_outline_text=updated.to_text(),
            stage_name=target.stage_name,
            chapter_range=target.chapter_range,
        )


__all__ = ["ActPlanner"]
