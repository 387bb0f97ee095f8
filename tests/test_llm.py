import asyncio
from types import SimpleNamespace

import litellm
import pytest
from conftest import ScriptedCompletionClient
from pydantic import BaseModel

from arcweaver.config import LLMConfig, RetryConfig
from arcweaver.core.llm import (
    CompletionConfig,
    LiteLLMClient,
    collect_stream,
    complete_structured,
    extract_json_payload,
    strip_code_fences,
)
from arcweaver.errors import CompletionError, StructuredOutputError


class Verdict(BaseModel):
    ok: bool
    note: str = ""


def test_config_from_settings(llm_config):
    cfg = CompletionConfig.from_settings(llm_config, temperature=0.2, top_p=None, max_tokens=512)

    assert cfg.model == "openai/test-model"
    assert cfg.temperature == pytest.approx(0.2)
    assert cfg.max_tokens == 512
    assert cfg.api_base == "http://llm.test/v1"
    kwargs = cfg.to_litellm_kwargs()
    assert "top_p" not in kwargs
    assert kwargs["api_key"] == "test-key"


def test_config_default_temperature():
    cfg = CompletionConfig.from_settings(LLMConfig(temperature=None))
    assert cfg.temperature == pytest.approx(0.7)

    assert CompletionConfig.from_settings(LLMConfig(temperature=1.1)).temperature == pytest.approx(1.1)


@pytest.mark.parametrize(
    "content",
    [
        '{"ok": true}',
        '```json\n{"ok": true}\n```',
        '好的，结果如下：{"ok": true} 希望有帮助',
        '{"ok": true,}',
    ],
)
def test_extract_json_payload_recovers(content):
    assert extract_json_payload(content)["ok"] is True


def test_extract_json_payload_without_json():
    with pytest.raises(ValueError):
        extract_json_payload("完全没有结构化内容")


def test_strip_code_fences():
    assert strip_code_fences("```text\n正文\n```") == "正文"
    assert strip_code_fences("  正文  ") == "正文"


def test_structured_completion_retries_with_error_feedback(llm_config):
    client = ScriptedCompletionClient(["不是JSON", '{"ok": false, "note": "重试成功"}'])
    cfg = CompletionConfig.from_settings(llm_config)

    verdict = asyncio.run(complete_structured(client, "判断一下", Verdict, cfg))

    assert verdict == Verdict(ok=False, note="重试成功")
    assert client.prompts[0] == "判断一下"
    assert client.prompts[1].startswith("判断一下\n\n上一次的输出无法解析")


def test_structured_completion_gives_up(llm_config):
    client = ScriptedCompletionClient(['{"note": "缺少字段"}'] * 3)
    cfg = CompletionConfig.from_settings(llm_config)

    with pytest.raises(StructuredOutputError, match="Verdict validation failed"):
        asyncio.run(complete_structured(client, "判断一下", Verdict, cfg, max_retries=2))
    assert len(client.prompts) == 3


def test_collect_stream():
    async def chunks():
        for part in ("灯", "塔", "之外"):
            yield part

    assert asyncio.run(collect_stream(chunks())) == "灯塔之外"


def test_client_requires_credentials():
    client = LiteLLMClient(RetryConfig(retry_attempts=1, retry_backoff=0))
    cfg = CompletionConfig(model="openai/test-model")

    with pytest.raises(CompletionError):
        asyncio.run(client.complete("你好", cfg))


def test_client_complete(monkeypatch, llm_config):
    calls = []

    async def fake_acompletion(**kwargs):
        calls.append(kwargs)
        return {"choices": [{"message": {"content": "你好，旅人。"}}]}

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    client = LiteLLMClient(RetryConfig(retry_attempts=1, retry_backoff=0))
    cfg = CompletionConfig.from_settings(llm_config, temperature=0.3)

    assert asyncio.run(client.complete("你好", cfg)) == "你好，旅人。"
    [call] = calls
    assert call["messages"] == [{"role": "user", "content": "你好"}]
    assert call["stream"] is False
    assert call["model"] == "openai/test-model"
    assert call["temperature"] == pytest.approx(0.3)


def test_client_stream(monkeypatch, llm_config):
    def chunk(text):
        return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])

    async def fake_acompletion(**kwargs):
        assert kwargs["stream"] is True

        async def stream():
            for item in (chunk("海"), SimpleNamespace(choices=[]), chunk(None), chunk("风")):
                yield item

        return stream()

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    client = LiteLLMClient(RetryConfig(retry_attempts=1, retry_backoff=0))
    cfg = CompletionConfig.from_settings(llm_config)

    assert asyncio.run(collect_stream(client.complete_stream("写", cfg))) == "海风"


def test_client_does_not_retry_non_transport_errors(monkeypatch, llm_config):
    calls = []

    async def fake_acompletion(**kwargs):
        calls.append(kwargs)
        raise ValueError("bad request")

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    client = LiteLLMClient(RetryConfig(retry_attempts=3, retry_backoff=0))

    with pytest.raises(ValueError, match="bad request"):
        asyncio.run(client.complete("你好", CompletionConfig.from_settings(llm_config)))
    assert len(calls) == 1
