import asyncio
import json

import pytest
from conftest import TWO_ACT_OUTLINE, ScriptedCompletionClient

from arcweaver.agents.chapter_writer import (
    ChapterWriter,
    build_context_outline,
    build_stage_guidance,
    genre_style_line,
    previous_chapter_block,
    requirements_block,
)
from arcweaver.core.logs import EventType, get_event_logger
from arcweaver.models import ChapterRecord, NovelSnapshot
from arcweaver.outline import parse_outline

OUTLINE = parse_outline(TWO_ACT_OUTLINE)


def _plan(scenes, status="正常进度", title="灯塔夜话"):
    return json.dumps(
        {
            "title": title,
            "bigOutlineEvents": ["林舟帮邻居加固房屋", "暴雨将至"],
            "progressStatus": status,
            "scenes": scenes,
        },
        ensure_ascii=False,
    )


def _novel(**fields):
    values = {"id": 1, "name": "灯塔之外", "genre": "奇幻", "style": "细腻", "outline": OUTLINE}
    values.update(fields)
    return NovelSnapshot(**values)


def test_writes_one_streamed_call_per_scene(repository, llm_config):
    client = ScriptedCompletionClient(
        [_plan(["修补屋顶", "邻居来访", "夜雨", "多余的场景"])],
        ["屋顶的瓦片在风里作响。", "邻居提着灯来敲门。", "夜雨终于落下。"],
    )
    writer = ChapterWriter(repository, client, llm=llm_config)

    draft = asyncio.run(writer.write_chapter(_novel(), 4, "多写一些对话"))

    assert draft.chapter_number == 4
    assert draft.title == "灯塔夜话"
    assert draft.content == "屋顶的瓦片在风里作响。\n\n邻居提着灯来敲门。\n\n夜雨终于落下。"
    assert draft.word_count == len(draft.content)
    assert len(client.stream_prompts) == 3

    decomposition, first_scene, second_scene, _ = client.configs
    assert decomposition.temperature == pytest.approx(0.5)
    assert first_scene.temperature == pytest.approx(0.7)
    assert first_scene.max_tokens == 4096
    assert first_scene.top_p == pytest.approx(1.0)

    assert "【用户额外要求】\n多写一些对话" in client.prompts[0]
    assert "第4章: 暴雨前夜，林舟帮助邻居加固房屋。" in client.prompts[0]
    assert "你将要开始撰写本章的开篇" in client.stream_prompts[0]
    assert "屋顶的瓦片在风里作响。" in client.stream_prompts[1]
    assert "**邻居来访**" in client.stream_prompts[1]


def test_prompts_carry_stage_guidance_and_previous_chapter(repository, llm_config):
    client = ScriptedCompletionClient([_plan(["开场"])], ["正文"])
    writer = ChapterWriter(repository, client, llm=llm_config)
    novel = _novel(settings={"segments_per_chapter": 1})
    previous = ChapterRecord(chapter_number=3, title="商人", content="商人把旧船拖上了岸。")

    asyncio.run(writer.write_chapter(novel, 4, previous_chapter=previous))

    decomposition = client.prompts[0]
    assert "【宏观叙事规划指导】" in decomposition
    assert "【重要限制】" in decomposition
    assert "第二幕: 风暴" in decomposition
    assert "...商人把旧船拖上了岸。" in decomposition
    assert "【风格指导】" in decomposition
    assert "**上一章结尾:**" in client.stream_prompts[0]


def test_style_guide_replaces_genre_line(repository, llm_config):
    client = ScriptedCompletionClient([_plan(["开场"])], ["正文"])
    writer = ChapterWriter(repository, client, llm=llm_config)

    asyncio.run(writer.write_chapter(_novel(style_guide="【文风】冷峻克制"), 2))

    assert "【文风】冷峻克制" in client.prompts[0]
    assert "【风格指导】" not in client.prompts[0]


def test_no_scenes_gives_empty_draft(repository, llm_config):
    client = ScriptedCompletionClient([_plan([], title="")])
    writer = ChapterWriter(repository, client, llm=llm_config)

    draft = asyncio.run(writer.write_chapter(_novel(), 4))

    assert draft.is_empty
    assert draft.title == "第4章"
    assert client.stream_prompts == []


def test_undecodable_decomposition_gives_empty_draft(repository, llm_config):
    client = ScriptedCompletionClient(["", "好的，马上开始写", '{"title": "缺少场景字段"'])
    writer = ChapterWriter(repository, client, llm=llm_config)

    draft = asyncio.run(writer.write_chapter(_novel(), 4))

    assert draft.is_empty
    assert draft.title == "第4章"
    assert len(client.prompts) == 3
    assert client.stream_prompts == []


def test_decomposition_transport_failure_propagates(repository, llm_config):
    client = ScriptedCompletionClient([ConnectionError("service down")])
    writer = ChapterWriter(repository, client, llm=llm_config)

    with pytest.raises(ConnectionError, match="service down"):
        asyncio.run(writer.write_chapter(_novel(), 4))


def test_decomposition_tolerates_fenced_json(repository, llm_config):
    client = ScriptedCompletionClient(
        ["```json\n" + _plan(["开场"]) + "\n```"], ["正文"]
    )
    writer = ChapterWriter(repository, client, llm=llm_config)

    draft = asyncio.run(writer.write_chapter(_novel(settings={"segments_per_chapter": 1}), 1))

    assert draft.content == "正文"


def test_severe_drift_is_logged_and_pushes_catch_up(repository, llm_config):
    client = ScriptedCompletionClient([_plan(["追赶剧情"], status="严重偏离")], ["正文"])
    writer = ChapterWriter(repository, client, llm=llm_config)

    asyncio.run(writer.write_chapter(_novel(settings={"segments_per_chapter": 1}), 4))

    events = get_event_logger().get_events(novel_id=1, event_type=EventType.CHAPTER_GENERATION)
    assert any("severe drift" in e.message for e in events)
    assert "严重偏离大纲轨道" in client.stream_prompts[0]


def test_stream_failure_propagates(repository, llm_config):
    client = ScriptedCompletionClient([_plan(["开场"])], [RuntimeError("stream broke")])
    writer = ChapterWriter(repository, client, llm=llm_config)

    with pytest.raises(RuntimeError, match="stream broke"):
        asyncio.run(writer.write_chapter(_novel(settings={"segments_per_chapter": 1}), 4))


def test_stage_guidance_progress_hints():
    long_outline = parse_outline(
        "**第一幕: 起 (第1-50章)**\n少年离家\n**第二幕: 承 (第51-100章)**\n远方的战争"
        "\n---\n**逐章细纲**\n---\n第1章: 开始"
    )

    early = build_stage_guidance(long_outline, 1)
    late = build_stage_guidance(long_outline, 50)
    middle = build_stage_guidance(long_outline, 25)
    last = build_stage_guidance(long_outline, 80)

    assert "阶段进度: 0% (1/50章)" in early
    assert "本阶段初期" in early
    assert "接近本阶段末尾" in late
    assert "【进度提示】" not in middle
    assert "远方的战争" in middle
    assert "【重要限制】" not in last
    assert build_stage_guidance(parse_outline("第1章: 无宏观"), 1) == ""


def test_context_outline_neighbours():
    detailed = OUTLINE.detailed_text

    first = build_context_outline(detailed, 1)
    assert "上一章大纲" not in first
    assert "**下一章大纲:**\n第2章:" in first

    last = build_context_outline(detailed, 5)
    assert "**上一章大纲:**\n第4章:" in last
    assert "下一章大纲" not in last

    assert build_context_outline(detailed, 9) == ""


def test_prompt_helpers():
    novel = _novel(special_requirements="主角不会游泳")

    assert requirements_block(novel, "加快节奏") == "【用户额外要求】\n加快节奏\n"
    assert requirements_block(novel, None) == "【小说核心设定】\n主角不会游泳\n"
    assert requirements_block(_novel(), None) == ""
    assert genre_style_line("", "") == ""
    assert "悬疑" in genre_style_line("悬疑", "")

    content = "头" * 600 + "尾" * 1500
    block = previous_chapter_block(ChapterRecord(chapter_number=1, content=content))
    assert "头" * 500 + "..." in block
    assert "..." + "尾" * 1500 in block
    assert previous_chapter_block(None) == ""
