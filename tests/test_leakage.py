import asyncio

import pytest
from conftest import TWO_ACT_OUTLINE, FakeRepository

from arcweaver.config import LeakageConfig
from arcweaver.errors import NovelNotFoundError
from arcweaver.outline import check_compliance, check_novel_compliance, extract_key_concepts
from arcweaver.outline.leakage import match_concept

LEAKY_TEXT = "林舟在码头捡到星图碎片，远处黑潮教团的船影浮现，他想起古老誓约。"
QUIET_TEXT = "清晨的小镇很安静，雨水落在石板路上。"


def test_quoted_phrases_come_first():
    concepts = extract_key_concepts(
        '核心概述: 林舟发现"星图碎片"，遭遇"黑潮教团"，获得"古老誓约"', LeakageConfig()
    )

    assert concepts[:3] == ["星图碎片", "黑潮教团", "古老誓约"]
    assert len(concepts) == len(set(concepts))


def test_all_quote_styles_are_recognized():
    assert extract_key_concepts("「圣剑」与《天书》以及『古卷』", LeakageConfig()) == [
        "圣剑",
        "古卷",
        "天书",
    ]
    assert extract_key_concepts("他说“明日启程”", LeakageConfig()) == ["明日启程"]


def test_colon_phrase_stops_at_clause_boundary():
    assert extract_key_concepts("关键地点：北境要塞，随后离开", LeakageConfig()) == ["北境要塞"]


def test_short_clauses_with_event_markers():
    settings = LeakageConfig()

    assert extract_key_concepts("主角在雪山觉醒，众人离散", settings) == ["主角在雪山觉醒"]
    assert extract_key_concepts("主角在一个非常非常遥远而寒冷的北方雪山之巅终于觉醒", settings) == []


def test_concepts_are_deduplicated_and_single_characters_dropped():
    settings = LeakageConfig()

    assert extract_key_concepts('"星图"出现后再次提到"星图"', settings) == ["星图"]
    assert extract_key_concepts('"甲"', settings) == []


def test_match_concept():
    exact = match_concept("星图碎片", "他握着星图碎片", 0.7)
    assert exact is not None and exact.exact and exact.ratio == 1.0

    assert match_concept("星图", "星空和地图", 0.7) is None

    scattered = match_concept("黑潮教团", "黑色的潮水涌向教堂，团长沉默。", 0.7)
    assert scattered is not None
    assert not scattered.exact
    assert scattered.ratio == 1.0

    assert match_concept("古老誓约", "古城", 0.7) is None


def test_leaky_chapter_is_flagged():
    report = check_compliance(LEAKY_TEXT, 3, TWO_ACT_OUTLINE, LeakageConfig())

    assert not report.compliant
    assert report.current_stage == "第一幕: 开端"
    assert report.future_stage == "第二幕: 风暴"
    assert {"星图碎片", "黑潮教团", "古老誓约"} <= set(report.matched_concepts)
    assert "第二幕: 风暴" in report.reason
    assert "第6-10章" in report.reason
    assert 0.9 < report.confidence <= 1.0


def test_quiet_chapter_is_compliant():
    report = check_compliance(QUIET_TEXT, 3, TWO_ACT_OUTLINE, LeakageConfig())

    assert report.compliant
    assert report.reason is None
    assert report.matches == []
    assert report.confidence == 0.0
    assert report.candidate_concepts[:3] == ["星图碎片", "黑潮教团", "古老誓约"]


def test_flag_threshold_is_configurable():
    text = "他在沙滩上捡到了星图碎片。"

    assert check_compliance(text, 2, TWO_ACT_OUTLINE, LeakageConfig()).compliant

    report = check_compliance(text, 2, TWO_ACT_OUTLINE, LeakageConfig(flag_threshold=1))
    assert not report.compliant
    assert report.matched_concepts == ["星图碎片"]
    assert report.confidence == 1.0


def test_final_stage_has_nothing_to_leak():
    report = check_compliance(LEAKY_TEXT, 8, TWO_ACT_OUTLINE, LeakageConfig())

    assert report.compliant
    assert report.current_stage == "第二幕: 风暴"
    assert report.future_stage is None


def test_chapter_between_stages_and_missing_outline_are_compliant():
    gapped = '**第一幕: 起 (第1-5章)**\n一\n**第二幕: 转 (第10-15章)**\n获得"星图碎片"'

    assert check_compliance(LEAKY_TEXT, 7, gapped, LeakageConfig()).current_stage is None
    assert check_compliance(LEAKY_TEXT, 7, gapped, LeakageConfig()).compliant
    assert check_compliance(LEAKY_TEXT, 1, None, LeakageConfig()).compliant
    assert check_compliance(LEAKY_TEXT, 1, "第1章: 没有宏观规划", LeakageConfig()).compliant


def test_novel_compliance_summary():
    repository = FakeRepository()
    novel_id = repository.add_novel()

    async def scenario():
        await repository.save_chapter(novel_id, 1, "一", QUIET_TEXT, len(QUIET_TEXT))
        await repository.save_chapter(novel_id, 2, "二", LEAKY_TEXT, len(LEAKY_TEXT))
        return await check_novel_compliance(novel_id, repository, LeakageConfig())

    summary = asyncio.run(scenario())

    assert summary.checked == 2
    assert summary.non_compliant_chapters == [2]


def test_novel_compliance_for_missing_novel():
    with pytest.raises(NovelNotFoundError):
        asyncio.run(check_novel_compliance(404, FakeRepository(), LeakageConfig()))
