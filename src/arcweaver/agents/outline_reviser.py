# src/arcweaver/agents/outline_reviser.py
"""Analyst/editor cycle that adapts the future chapter plan to written prose."""

from __future__ import annotations

import json

from arcweaver.config import LLMConfig, RetryConfig, config
from arcweaver.core.llm import strip_code_fences
from arcweaver.core.logging import get_logger
from arcweaver.core.logs import EventType, get_event_logger, log_calls
from arcweaver.models import DriftReport, NovelSnapshot
from arcweaver.ports import CompletionClient, NovelRepository

from .base import Agent

logger = get_logger(__name__)
event_logger = get_event_logger()

EDITOR_TEMPERATURE = 0.5

_DRIFT_REPORT_SHAPE = """{
  "newCharacters": [
    {
      "name": "新角色的名字",
      "description": "对该角色的简要描述，包括外貌、身份等。",
      "personality": "（可选）角色的性格特点。",
      "background": "（可选）角色的背景故事或来源。"
    }
  ],
  "newPlotClues": [
    {
      "content": "新出现的关键情节线索的简要概括。",
      "details": "（可选）关于这个线索的更多细节或其重要性的初步分析。"
    }
  ],
  "plotTwists": [
    {
      "description": "与原计划有显著出入，或完全意料之外的关键情节转折。",
      "impactOnFuture": "分析这个转折对未来故事走向的潜在影响。"
    }
  ],
  "relationshipChanges": [
    {
      "charactersInvolved": ["角色A的名字", "角色B的名字"],
      "changeDescription": "描述这两个角色之间的关系发生了什么具体变化。"
    }
  ]
}"""


class OutlineReviser(Agent):
    """Keeps the unwritten part of the chapter plan consistent with the prose.

    An analyst call extracts a :class:`DriftReport` from recent chapters, new
    characters and clues are stored, and an editor call applies the smallest
    revision of the future plan that absorbs the drift. Every step falls
    back to leaving the plan unchanged.
    """

    def __init__(
        self,
        repository: NovelRepository,
        client: CompletionClient,
        *,
        llm: LLMConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        super().__init__(repository, client, llm=llm)
        self.retry = retry or config.retry

    def build_analyst_prompt(self, generated_content: str) -> str:
        return f"""
你是一位专业的剧情分析师。请仔细阅读以下几个章节的小说内容。你的任务是识别并以严格的JSON格式，报告在此期间发生的、可能对未来故事走向产生重大影响的**新信息**和**关键变化**。

【章节内容】
---
{generated_content}
---

【你的任务】
请严格按照下面的JSON结构输出你的分析报告。
-   **只输出JSON对象，不要包含任何解释性文字或代码块标记**。
-   如果某个类别下没有新内容，请使用空数组 `[]`。
-   在描述和分析时，请使用简洁、客观的语言。

【JSON输出结构】
{_DRIFT_REPORT_SHAPE}
"""

    def build_editor_prompt(self, report: DriftReport, future_outline: str) -> str:
        report_json = json.dumps(
            report.model_dump(by_alias=True), ensure_ascii=False, indent=2
        )
        return f"""
你是一位经验丰富的首席编辑，负责维护一部长篇小说的逻辑一致性和长期吸引力。你的任务是根据刚刚发生的最新剧情进展，对未来的章节大纲进行精细的、必要的微调。

【最新剧情变化摘要 (漂移报告)】
```json
{report_json}
```

【原定的未来章节规划】
---
{future_outline}
---

【你的核心任务】
1.  **最小化修改原则**: 只在绝对必要时进行修改。不要进行不相关的大规模重写。
2.  **无缝整合原则**: 将报告中的新角色、新线索、新情节自然地融入到未来的规划中，使其看起来就像是"本该如此"。
3.  **解决冲突原则**: 如果新进展与未来某个规划有逻辑冲突，请巧妙地解决它。
4.  **主线稳定原则**: 保持故事的核心主线和重大里程碑事件不变。你的工作是调整细节，而不是改变故事的骨架。

【输出要求】
-   **请只输出经过你修订后的、完整的未来章节规划文本**。
-   不要添加任何解释性文字。
-   保持与原始大纲完全相同的格式。
"""

    async def analyze(self, generated_content: str) -> DriftReport:
        """Return the drift report for ``generated_content``; empty on failure."""
        try:
            return await self.call_llm_structured(
                self.build_analyst_prompt(generated_content), DriftReport, max_retries=1
            )
        except Exception as exc:
            logger.warning("Analyst produced no usable drift report: %s", exc)
            return DriftReport()

    async def store_drift(self, novel_id: int, report: DriftReport, first_chapter: int) -> None:
        """Persist new characters and plot clues from ``report``."""
        retries = self.retry.retry_attempts
        if report.new_characters:
            try:
                added = await self.with_retries(
                    self.repository.add_characters,
                    novel_id,
                    report.new_characters,
                    first_chapter,
                    retries=retries,
                )
                logger.info("Stored %d new characters for novel %s", added, novel_id)
            except Exception:
                logger.exception("Storing new characters for novel %s failed", novel_id)
        if report.new_plot_clues:
            try:
                added = await self.with_retries(
                    self.repository.add_plot_clues,
                    novel_id,
                    report.new_plot_clues,
                    first_chapter,
                    retries=retries,
                )
                logger.info("Stored %d new plot clues for novel %s", added, novel_id)
            except Exception:
                logger.exception("Storing new plot clues for novel %s failed", novel_id)

    async def revise(self, report: DriftReport, future_outline: str) -> str:
        """Return the editor's revision of ``future_outline``, or the original."""
        if report.is_empty:
            logger.debug("Drift report is empty; future outline unchanged")
            return future_outline
        try:
            revised = await self.stream_llm(
                self.build_editor_prompt(report, future_outline),
                self.completion_config(temperature=EDITOR_TEMPERATURE),
            )
        except Exception as exc:
            logger.warning("Editor failed; keeping the original future outline: %s", exc)
            return future_outline
        revised = strip_code_fences(revised)
        if not revised:
            logger.warning("Editor returned nothing; keeping the original future outline")
            return future_outline
        return revised

    @log_calls
    async def run_revision_cycle(
        self,
        novel: NovelSnapshot,
        generated_content: str,
        future_outline: str,
        first_chapter: int,
    ) -> str:
        """Run analyst, store and editor steps and return the future outline.

        Parameters
        ----------
        novel:
            The novel the prose belongs to.
        generated_content:
            Chapters written since the previous cycle.
        future_outline:
            Chapter plan from the next unwritten chapter onward.
        first_chapter:
            First chapter of the batch; recorded as the first appearance of
            new characters and clues.
        """
        report = await self.analyze(generated_content)
        await self.store_drift(novel.id, report, first_chapter)
        revised = await self.revise(report, future_outline)
        event_logger.info(
            "Outline revision cycle finished"
            + (" with changes" if revised != future_outline else " without changes"),
            event_type=EventType.OUTLINE_REVISION,
            novel_id=novel.id,
            component=__name__,
            metadata={
                "new_characters": len(report.new_characters),
                "new_plot_clues": len(report.new_plot_clues),
                "plot_twists": len(report.plot_twists),
            },
        )
        return revised


__all__ = ["OutlineReviser"]
