# src/arcweaver/agents/chapter_writer.py
"""Chapter writer: decomposes a chapter into scenes and streams each one."""

from __future__ import annotations

import math

from arcweaver.core.logging import get_logger
from arcweaver.core.logs import EventType, get_event_logger, log_calls
from arcweaver.errors import StructuredOutputError
from arcweaver.models import (
    ChapterDraft,
    ChapterPlan,
    ChapterRecord,
    NovelSnapshot,
    OutlineDocument,
    ProgressStatus,
)
from arcweaver.outline import (
    extract_chapter_markers,
    get_chapter_outline,
    get_current_stage,
    get_next_stage,
)

from .base import Agent

logger = get_logger(__name__)
event_logger = get_event_logger()

CHAPTER_WORD_TARGET = 4000
CHAPTER_WORD_TOLERANCE = 0.15
DECOMPOSITION_TEMPERATURE = 0.5

_HEAD_CHARS = 500
_TAIL_CHARS = 1500


def build_stage_guidance(outline: OutlineDocument, chapter_number: int) -> str:
    """Describe where ``chapter_number`` sits within its arc stage.

    Returns an empty string when the outline declares no stages or the
    chapter falls in a gap between them.
    """
    current = get_current_stage(outline.stages, chapter_number)
    if current is None:
        return ""
    rng = current.chapter_range
    progress = math.floor((chapter_number - rng.start) / rng.size * 100) if rng.size else 0
    guidance = f"""
【宏观叙事规划指导】
当前章节(第{chapter_number}章)处于"{current.stage_name}"阶段 ({rng})
阶段进度: {progress}% ({chapter_number - rng.start + 1}/{rng.size}章)

本阶段核心概述:
{current.core_summary}
"""
    upcoming = get_next_stage(outline.stages, current)
    if upcoming is not None:
        guidance += f"""
【重要限制】
以下内容属于后续"{upcoming.stage_name}"阶段({upcoming.chapter_range})，在当前章节中不应过早引入:
{upcoming.core_summary}
"""
    if progress > 80:
        guidance += """
【进度提示】
当前章节已接近本阶段末尾，应该为下一阶段的内容做铺垫，但不要直接引入下一阶段的核心元素。
"""
    elif progress < 20:
        guidance += """
【进度提示】
当前章节处于本阶段初期，应该专注于建立本阶段的基础元素和主题，同时与上一阶段做好过渡。
"""
    return guidance


def build_context_outline(detailed_text: str, chapter_number: int) -> str:
    """Return the previous, current and next chapter plans, where present."""
    current = get_chapter_outline(detailed_text, chapter_number)
    if current is None:
        return ""
    parts: list[str] = []
    previous = get_chapter_outline(detailed_text, chapter_number - 1) if chapter_number > 1 else None
    if previous:
        parts.append(f"**上一章大纲:**\n第{chapter_number - 1}章: {previous}")
    parts.append(f"**当前章节大纲:**\n第{chapter_number}章: {current}")
    following = get_chapter_outline(detailed_text, chapter_number + 1)
    if following:
        parts.append(f"**下一章大纲:**\n第{chapter_number + 1}章: {following}")
    return "\n\n".join(parts)


def genre_style_line(genre: str, style: str) -> str:
    if not genre and not style:
        return ""
    return f"【风格指导】\n本作类型为{genre or '未指定'}，请以{style or '自然流畅'}的笔调写作，保持全书风格统一。\n"


def requirements_block(novel: NovelSnapshot, user_prompt: str | None) -> str:
    if user_prompt:
        return f"【用户额外要求】\n{user_prompt}\n"
    if novel.special_requirements:
        return f"【小说核心设定】\n{novel.special_requirements}\n"
    return ""


def previous_chapter_block(previous: ChapterRecord | None) -> str:
    if previous is None or not previous.content:
        return ""
    content = previous.content
    return f"""
为了确保情节的绝对连贯，以下是上一章的开头和结尾的关键部分，你必须在此基础上进行续写：
**上一章开头:**
```
{content[:_HEAD_CHARS]}...
```
**上一章结尾:**
```
...{content[-_TAIL_CHARS:]}
```
"""


class ChapterWriter(Agent):
    """Produces the prose of one chapter.

    A structured call first plans the title, the outline events to cover
    and a short list of scenes; each scene is then streamed separately
    with the novel's sampling settings.
    """

    def _shared_context(
        self, novel: NovelSnapshot, chapter_number: int, user_prompt: str | None
    ) -> str:
        style_guide = novel.style_guide if novel.style_guide and novel.style_guide.strip() else (
            genre_style_line(novel.genre, novel.style)
        )
        return "\n".join(
            part
            for part in (
                requirements_block(novel, user_prompt),
                style_guide,
                build_stage_guidance(novel.outline, chapter_number),
            )
            if part
        )

    def build_decomposition_prompt(
        self,
        novel: NovelSnapshot,
        chapter_number: int,
        user_prompt: str | None,
        previous: ChapterRecord | None,
    ) -> str:
        segments = max(novel.settings.segments_per_chapter, 1)
        detailed = novel.outline.detailed_text
        context_outline = build_context_outline(detailed, chapter_number) or (
            f"这是第 {chapter_number} 章，但我们没有具体的剧情大纲。"
            "请根据上一章的结尾和整体故事走向，创造一个合理的情节发展。"
        )
        previous_tail = previous.content[-_TAIL_CHARS:] if previous and previous.content else "无"
        return f"""
你是一位顶级小说编剧，任务是规划即将开始的新章节，确保故事严格按照大纲发展。

{self._shared_context(novel, chapter_number, user_prompt)}

**最高优先级指令：** 你的首要任务是确保本章内容忠实地实现大纲中规划的事件。

**双重约束：** 你需要同时满足两个核心要求：
1. 确保本章内容与大纲中对应章节的描述高度一致
2. 确保叙事与上一章的结尾自然衔接

**场景数量硬性要求：** 你必须严格遵守生成 {segments} 个场景的限制，不多不少。

---
**上一章结尾的关键情节:**
```
...{previous_tail}
```
---

**本章的剧情大纲 (必须严格遵循):**
```
{context_outline}
```
---

**大纲进度追踪:**
当前小说总体进度: 已完成 {chapter_number - 1} 章 / 计划总章节 {novel.total_chapter_goal or "未知"} 章
大纲中详细规划的章节数: {len(extract_chapter_markers(detailed))} 章

**你的具体任务:**
1. 为本章起一个引人入胜的标题，能够反映大纲中描述的主要事件。
2. 分析本章的大纲，提取出2-4个需要在本章实现的关键事件点。
3. 评估当前小说进度是否与大纲匹配（正常进度、轻度偏离、严重偏离）。
4. 设计出 **严格限制为{segments}个** 连贯的场景，第一个场景必须自然衔接上一章结尾。

【严格格式要求】
- 你必须只输出一个JSON对象，不包含任何前言、解释或结尾评论
- 直接以花括号 {{ 开始你的响应，以花括号 }} 结束

{{
  "title": "章节标题",
  "bigOutlineEvents": ["关键事件1", "关键事件2"],
  "progressStatus": "正常进度|轻度偏离|严重偏离",
  "scenes": ["场景1的简要描述", "场景2的简要描述"]
}}
"""

    def build_scene_prompt(
        self,
        novel: NovelSnapshot,
        chapter_number: int,
        plan: ChapterPlan,
        scene: str,
        written: str,
        user_prompt: str | None,
        previous: ChapterRecord | None,
    ) -> str:
        per_scene = CHAPTER_WORD_TARGET / len(plan.scenes)
        lower = round(per_scene * (1 - CHAPTER_WORD_TOLERANCE))
        upper = round(per_scene * (1 + CHAPTER_WORD_TOLERANCE))
        events = "\n".join(f"{i}. {event}" for i, event in enumerate(plan.outline_events, 1))
        catch_up = ""
        if plan.progress_status is ProgressStatus.SEVERE_DRIFT:
            catch_up = "由于当前小说进度已严重偏离大纲轨道，你必须在本章中想办法尽快推进剧情，确保回归大纲预设的情节发展。"
        so_far = (
            f"到目前为止，本章已经写下的内容如下，请你无缝地接续下去：\n---\n{written}\n---"
            if written
            else "你将要开始撰写本章的开篇。"
        )
        return f"""
你是一位顶级小说家，正在创作《{novel.name}》的第 {chapter_number} 章，标题是"{plan.title}"。
你的写作风格是：【{novel.style}】。

{self._shared_context(novel, chapter_number, user_prompt)}

**大纲指导（最高优先级）:**
根据小说大纲，本章必须实现以下关键事件：
{events}

**进度状态:** {plan.progress_status.value}
{catch_up}

{previous_chapter_block(previous)}

{so_far}

当前场景的核心任务是：
**{scene}**

请你围绕这个核心任务，创作一段{lower}到{upper}字左右的、情节丰富、文笔细腻的场景内容。

【严格格式要求】
- 只输出纯粹的小说正文
- 不要包含任何标题、场景编号或解释性文字
- 不要使用Markdown格式
"""

    @log_calls
    async def write_chapter(
        self,
        novel: NovelSnapshot,
        chapter_number: int,
        user_prompt: str | None = None,
        previous_chapter: ChapterRecord | None = None,
    ) -> ChapterDraft:
        """Write chapter ``chapter_number`` of ``novel``.

        Returns
        -------
        ChapterDraft
            The chapter; its content is empty when the decomposition reply
            could not be decoded, the model planned no scenes or every scene
            came back blank.
        """
        try:
            plan = await self.call_llm_structured(
                self.build_decomposition_prompt(novel, chapter_number, user_prompt, previous_chapter),
                ChapterPlan,
                cfg=self.completion_config(temperature=DECOMPOSITION_TEMPERATURE),
            )
        except StructuredOutputError as exc:
            logger.warning("Chapter %d: no usable decomposition: %s", chapter_number, exc)
            return ChapterDraft(chapter_number=chapter_number, title=f"第{chapter_number}章")
        segments = max(novel.settings.segments_per_chapter, 1)
        if len(plan.scenes) > segments:
            logger.debug(
                "Chapter %d: model planned %d scenes, keeping %d",
                chapter_number,
                len(plan.scenes),
                segments,
            )
            plan = plan.model_copy(update={"scenes": plan.scenes[:segments]})
        title = plan.title.strip() or f"第{chapter_number}章"
        if plan.progress_status is ProgressStatus.SEVERE_DRIFT:
            event_logger.warning(
                f"Chapter {chapter_number} planning reports severe drift from the outline",
                event_type=EventType.CHAPTER_GENERATION,
                novel_id=novel.id,
                component=__name__,
            )
        if not plan.scenes:
            logger.warning("Chapter %d: decomposition returned no scenes", chapter_number)
            return ChapterDraft(chapter_number=chapter_number, title=title)

        settings = novel.settings
        scene_cfg = self.completion_config(
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            top_p=settings.top_p,
            frequency_penalty=settings.frequency_penalty,
            presence_penalty=settings.presence_penalty,
        )
        written: list[str] = []
        for index, scene in enumerate(plan.scenes, 1):
            event_logger.debug(
                f"Chapter {chapter_number} scene {index}/{len(plan.scenes)}: {scene}",
                event_type=EventType.CHAPTER_GENERATION,
                novel_id=novel.id,
                component=__name__,
            )
            prompt = self.build_scene_prompt(
                novel,
                chapter_number,
                plan,
                scene,
                "\n\n".join(written),
                user_prompt,
                previous_chapter,
            )
            text = (await self.stream_llm(prompt, scene_cfg)).strip()
            if text:
                written.append(text)

        content = "\n\n".join(written).strip()
        return ChapterDraft(
            chapter_number=chapter_number,
            title=title,
            content=content,
            word_count=len(content),
        )


__all__ = [
    "CHAPTER_WORD_TARGET",
    "CHAPTER_WORD_TOLERANCE",
    "build_stage_guidance",
    "build_context_outline",
    "genre_style_line",
    "requirements_block",
    "previous_chapter_block",
    "ChapterWriter",
]
