from __future__ import annotations

import asyncio
from types import SimpleNamespace

from sofia.agent import llm_provider
from sofia.agent.schemas import ClassifierOutput


def test_provider_follows_model_name_unless_forced(monkeypatch):
  monkeypatch.delenv("AGENT_LLM_PROVIDER", raising=False)
  assert llm_provider._provider_for_model("gemini-2.0-flash") == "gemini"
  assert llm_provider._provider_for_model("models/gemini-2.5-pro") == "gemini"
  assert llm_provider._provider_for_model("gpt-4o-mini") == "openai"
  monkeypatch.setenv("AGENT_LLM_PROVIDER", "gemini")
  assert llm_provider._provider_for_model("gpt-4o-mini") == "gemini"


async def test_missing_gemini_key_reports_unavailable(monkeypatch):
  monkeypatch.delenv("AGENT_LLM_PROVIDER", raising=False)
  monkeypatch.delenv("GEMINI_API_KEY", raising=False)
  parsed, raw, meta = await llm_provider.run_structured_completion(
      model="gemini-2.0-flash", system_prompt="s", developer_prompt=None,
      user_payload={}, response_model=ClassifierOutput, max_completion_tokens=10)
  assert parsed is None and raw == ""
  assert meta["llm_available"] is False
  assert meta["unavailable_reason"] == "gemini_api_key_missing"


def _fake_openai(create):
  return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def _completion(text):
  return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


async def test_openai_structured_output_is_recovered(monkeypatch):
  monkeypatch.delenv("AGENT_LLM_PROVIDER", raising=False)
  seen = {}

  async def create(**kwargs):
    seen.update(kwargs)
    return _completion('```json\n{"action": "query", "parameters": {}}\n```')

  monkeypatch.setattr(llm_provider, "get_async_client", lambda: _fake_openai(create))
  parsed, raw, meta = await llm_provider.run_structured_completion(
      model="gpt-4o-mini", system_prompt="Clasifica", developer_prompt=None,
      user_payload={"message": "hola"}, response_model=ClassifierOutput,
      max_completion_tokens=10)
  assert parsed.action == "query"
  assert meta["provider"] == "openai"
  assert seen["response_format"] == {"type": "json_object"}
  assert "reasoning_effort" not in seen
  assert "JSON" in seen["messages"][0]["content"]


async def test_openai_timeout_returns_empty_text(monkeypatch):
  monkeypatch.delenv("AGENT_LLM_PROVIDER", raising=False)

  async def create(**kwargs):
    await asyncio.sleep(5)
    return _completion("tarde")

  monkeypatch.setattr(llm_provider, "get_async_client", lambda: _fake_openai(create))
  text, meta = await llm_provider.run_text_completion(
      model="gpt-4o-mini", system_prompt="s", developer_prompt=None,
      user_payload={}, max_completion_tokens=10, timeout=0.05)
  assert text == ""
  assert meta["llm_error"] == "timeout"
  assert meta["llm_output_empty_or_error"] is True


async def test_openai_error_is_reported_not_raised(monkeypatch):
  monkeypatch.delenv("AGENT_LLM_PROVIDER", raising=False)

  async def create(**kwargs):
    raise RuntimeError("rate limited")

  monkeypatch.setattr(llm_provider, "get_async_client", lambda: _fake_openai(create))
  parsed, raw, meta = await llm_provider.run_structured_completion(
      model="gpt-4o-mini", system_prompt="s", developer_prompt=None,
      user_payload={}, response_model=ClassifierOutput, max_completion_tokens=10)
  assert parsed is None
  assert meta["llm_error"] == "rate limited"


async def test_openai_completion_without_choices_is_a_failure(monkeypatch):
  monkeypatch.delenv("AGENT_LLM_PROVIDER", raising=False)

  async def create(**kwargs):
    return SimpleNamespace(choices=[])

  monkeypatch.setattr(llm_provider, "get_async_client", lambda: _fake_openai(create))
  parsed, raw, meta = await llm_provider.run_structured_completion(
      model="gpt-4o-mini", system_prompt="s", developer_prompt=None,
      user_payload={}, response_model=ClassifierOutput, max_completion_tokens=10)
  assert parsed is None and raw == ""
  assert meta["llm_error"] == "no choices"
  text, meta = await llm_provider.run_text_completion(
      model="gpt-4o-mini", system_prompt="s", developer_prompt=None,
      user_payload={}, max_completion_tokens=10)
  assert text == ""
  assert meta["llm_output_empty_or_error"] is True


def test_gemini_structured_call_retries_once_on_bad_json():
  outputs = iter(["lo siento, no puedo", '{"action": "delete", "parameters": {"name": "x"}}'])
  prompts = []

  def generate_content(model, contents, config):
    prompts.append(contents)
    return SimpleNamespace(text=next(outputs))

  client = SimpleNamespace(models=SimpleNamespace(generate_content=generate_content))
  parsed, raw = llm_provider._gemini_structured_sync(
      client, "gemini-2.0-flash", "prompt", ClassifierOutput, 100)
  assert parsed.action == "delete"
  assert len(prompts) == 2
  assert "[RETRY]" in prompts[1]
