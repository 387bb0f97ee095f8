from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence
from typing import Any

import pytest

from arcweaver.config import (
    ControllerConfig,
    DatabaseConfig,
    LeakageConfig,
    LLMConfig,
    PlannerConfig,
    RetryConfig,
    SystemConfig,
)
from arcweaver.core.llm import CompletionConfig
from arcweaver.core.logs import clear_logs
from arcweaver.errors import NovelNotFoundError
from arcweaver.models import (
    ChapterDraft,
    ChapterRecord,
    DriftCharacter,
    DriftPlotClue,
    GenerationSettings,
    NovelSnapshot,
    OutlineDocument,
    PlanningSkipped,
    SkipReason,
)
from arcweaver.outline import parse_outline

TWO_ACT_OUTLINE = """**第一幕: 开端 (第1-5章)**
核心概述: 林舟在海边小镇长大，平静地修补渔网
- 小镇日常
- 灯塔守夜人
**第二幕: 风暴 (第6-10章)**
核心概述: 林舟发现"星图碎片"，遭遇"黑潮教团"，获得"古老誓约"
- 出海远行
---
**逐章细纲**
---
第1章: 林舟在码头修补渔网，听说灯塔将被拆除。
第2章: 林舟夜访灯塔守夜人，得知老人的往事。
第3章: 镇上来了陌生商人，收购旧船。
第4章: 暴雨前夜，林舟帮助邻居加固房屋。
第5章: 风暴来临，灯塔的灯第一次熄灭。"""

ONE_ACT_OUTLINE = """**第一幕: 开端 (第1-5章)**
核心概述: 主角发现神秘信件
---
**逐章细纲**
---
第1章: 主角收到信。
第2章: 主角读信。
第3章: 主角寻找寄信人。
第4章: 主角找到线索。
第5章: 主角决定出发。"""


def numbered_plan(start: int, end: int, text: str = "原计划的情节") -> str:
    return "\n".join(f"第{n}章: 第{n}章{text}。" for n in range(start, end + 1))


class ScriptedCompletionClient:
    """Completion port fake that replays queued responses.

    Items that are exceptions are raised instead of returned.
    """

    def __init__(
        self, responses: Iterable[Any] = (), stream_responses: Iterable[Any] = ()
    ) -> None:
        self._responses = iter(responses)
        self._stream_responses = iter(stream_responses)
        self.prompts: list[str] = []
        self.stream_prompts: list[str] = []
        self.configs: list[CompletionConfig] = []

    async def complete(self, prompt: str, config: CompletionConfig) -> str:
        self.prompts.append(prompt)
        self.configs.append(config)
        item = next(self._responses)
        if isinstance(item, Exception):
            raise item
        return item

    async def complete_stream(self, prompt: str, config: CompletionConfig) -> AsyncIterator[str]:
        self.stream_prompts.append(prompt)
        self.configs.append(config)
        item = next(self._stream_responses)
        if isinstance(item, Exception):
            raise item
        middle = len(item) // 2
        for chunk in (item[:middle], item[middle:]):
            if chunk:
                yield chunk


class FakeRepository:
    """In-memory persistence port."""

    def __init__(self) -> None:
        self.novels: dict[int, dict[str, Any]] = {}
        self.chapters: dict[int, dict[int, ChapterRecord]] = {}
        self.characters: dict[int, list[tuple[DriftCharacter, int]]] = {}
        self.clues: dict[int, list[tuple[DriftPlotClue, int]]] = {}
        self.saved_outlines: list[str] = []
        self.settings = GenerationSettings()
        self.fail_on: set[str] = set()

    def add_novel(self, novel_id: int = 1, outline: str | None = TWO_ACT_OUTLINE, **fields: Any) -> int:
        self.novels[novel_id] = {
            "name": "灯塔之外",
            "genre": "奇幻",
            "style": "细腻",
            "plot_outline": outline,
            "expansion_count": 0,
            **fields,
        }
        self.chapters[novel_id] = {}
        return novel_id

    def add_chapters(self, novel_id: int, count: int) -> None:
        for n in range(1, count + 1):
            self.chapters[novel_id][n] = ChapterRecord(
                chapter_number=n, title=f"第{n}章", content=f"第{n}章正文", word_count=5
            )

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} unavailable")

    async def get_novel(self, novel_id: int) -> NovelSnapshot | None:
        self._check("get_novel")
        data = self.novels.get(novel_id)
        if data is None:
            return None
        return NovelSnapshot(
            id=novel_id,
            name=data["name"],
            genre=data["genre"],
            style=data["style"],
            outline=parse_outline(data["plot_outline"]),
            expansion_count=data["expansion_count"],
            special_requirements=data.get("special_requirements"),
            style_guide=data.get("style_guide"),
            total_chapter_goal=data.get("total_chapter_goal"),
            chapter_count=len(self.chapters[novel_id]),
            settings=self.settings,
        )

    async def get_chapter_count(self, novel_id: int) -> int:
        return len(self.chapters.get(novel_id, {}))

    async def save_outline(self, novel_id: int, outline: OutlineDocument) -> None:
        self._check("save_outline")
        if novel_id not in self.novels:
            raise NovelNotFoundError(novel_id)
        text = outline.to_text()
        self.novels[novel_id]["plot_outline"] = text
        self.saved_outlines.append(text)

    async def save_chapter(
        self, novel_id: int, chapter_number: int, title: str, content: str, word_count: int
    ) -> ChapterRecord:
        self._check("save_chapter")
        record = ChapterRecord(
            chapter_number=chapter_number, title=title, content=content, word_count=word_count
        )
        self.chapters[novel_id][chapter_number] = record
        return record

    async def record_expansion(self, novel_id: int) -> None:
        if novel_id not in self.novels:
            raise NovelNotFoundError(novel_id)
        self.novels[novel_id]["expansion_count"] += 1

    async def get_latest_chapter(self, novel_id: int) -> ChapterRecord | None:
        chapters = self.chapters.get(novel_id) or {}
        return chapters[max(chapters)] if chapters else None

    async def list_chapters(self, novel_id: int) -> list[ChapterRecord]:
        chapters = self.chapters.get(novel_id, {})
        return [chapters[n] for n in sorted(chapters)]

    async def add_characters(
        self, novel_id: int, characters: Sequence[DriftCharacter], first_chapter: int
    ) -> int:
        self._check("add_characters")
        self.characters.setdefault(novel_id, []).extend((c, first_chapter) for c in characters)
        return len(characters)

    async def add_plot_clues(
        self, novel_id: int, clues: Sequence[DriftPlotClue], first_chapter: int
    ) -> int:
        self._check("add_plot_clues")
        self.clues.setdefault(novel_id, []).extend((c, first_chapter) for c in clues)
        return len(clues)


class FakePlanner:
    def __init__(self) -> None:
        self.calls: list[int] = []

    async def maybe_plan_next_act(self, novel_id: int) -> PlanningSkipped:
        self.calls.append(novel_id)
        return PlanningSkipped(reason=SkipReason.SUFFICIENT_RUNWAY)


class FakeWriter:
    """Chapter writer fake; ``contents`` items may be strings or exceptions."""

    def __init__(self, contents: Iterable[Any]) -> None:
        self._contents = iter(contents)
        self.calls: list[dict[str, Any]] = []

    async def write_chapter(
        self,
        novel: NovelSnapshot,
        chapter_number: int,
        user_prompt: str | None = None,
        previous_chapter: ChapterRecord | None = None,
    ) -> ChapterDraft:
        self.calls.append(
            {
                "novel": novel,
                "chapter_number": chapter_number,
                "user_prompt": user_prompt,
                "previous_chapter": previous_chapter,
            }
        )
        content = next(self._contents)
        if isinstance(content, Exception):
            raise content
        return ChapterDraft(
            chapter_number=chapter_number,
            title=f"标题{chapter_number}",
            content=content,
            word_count=len(content.strip()),
        )


class FakeReviser:
    def __init__(self, old: str = "原计划", new: str = "新计划") -> None:
        self.old = old
        self.new = new
        self.calls: list[dict[str, Any]] = []

    async def run_revision_cycle(
        self, novel: NovelSnapshot, generated_content: str, future_outline: str, first_chapter: int
    ) -> str:
        self.calls.append(
            {
                "generated_content": generated_content,
                "future_outline": future_outline,
                "first_chapter": first_chapter,
            }
        )
        return future_outline.replace(self.old, self.new)


CONFIG_SECTIONS = (
    DatabaseConfig,
    LLMConfig,
    SystemConfig,
    RetryConfig,
    PlannerConfig,
    LeakageConfig,
    ControllerConfig,
)


@pytest.fixture(autouse=True)
def config_env(monkeypatch):
    """Unset every variable a config section reads."""
    for section in CONFIG_SECTIONS:
        for info in section.model_fields.values():
            if isinstance(info.validation_alias, str):
                monkeypatch.delenv(info.validation_alias, raising=False)
    return monkeypatch


@pytest.fixture(autouse=True)
def _clear_event_log():
    clear_logs()
    yield
    clear_logs()


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def llm_config() -> LLMConfig:
    return LLMConfig(api_base="http://llm.test/v1", api_key="test-key", model="openai/test-model")


@pytest.fixture
def planner_config() -> PlannerConfig:
    return PlannerConfig(act_planning_threshold=10, context_window=10)


@pytest.fixture
def controller_config() -> ControllerConfig:
    return ControllerConfig(revision_interval=5, success_reset_delay=0, error_reset_delay=0)


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(retry_attempts=1, retry_backoff=0)
