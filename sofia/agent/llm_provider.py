from __future__ import annotations

import asyncio
import json
import os
import re
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from google import genai
from google.genai import types as genai_types
from pydantic import BaseModel, ValidationError

from ..config import LLM_TIMEOUT_SECONDS
from ..llm import get_async_client

T = TypeVar("T", bound=BaseModel)

_gemini_client: Any = None
_gemini_api_key_cached: str = ""
_GEMINI_DEFAULT_THINKING_LEVEL = "NONE"
_OPENAI_REASONING_PREFIXES = ("gpt-5", "o1", "o3", "o4")


def _is_llm_debug_enabled() -> bool:
  return os.getenv("LLM_DEBUG", "0").strip() == "1"


def _print_raw_output(*, kind: str, provider: str, model: str,
                      raw_output: str) -> None:
  if not _is_llm_debug_enabled():
    return
  print(f"[AGENT LLM RAW] kind={kind} provider={provider} model={model}", flush=True)
  print(raw_output if raw_output else "(empty)", flush=True)
  print("[AGENT LLM RAW END]", flush=True)


def _extract_message_text(content: Any) -> str:
  if isinstance(content, str):
    return content.strip()
  if isinstance(content, list):
    chunks = []
    for item in content:
      if isinstance(item, dict):
        text_val = item.get("text")
        if isinstance(text_val, str) and text_val.strip():
          chunks.append(text_val.strip())
      elif isinstance(item, str) and item.strip():
        chunks.append(item.strip())
    return " ".join(chunks).strip()
  return ""


def _first_choice_text(completion: Any) -> Optional[str]:
  choices = getattr(completion, "choices", None) or []
  if not choices:
    return None
  message = getattr(choices[0], "message", None)
  return _extract_message_text(getattr(message, "content", None))


def _provider_for_model(model: str) -> str:
  provider = os.getenv("AGENT_LLM_PROVIDER", "auto").strip().lower()
  if provider in ("openai", "gemini"):
    return provider
  model_name = str(model or "").strip().lower()
  if model_name.startswith("gemini") or model_name.startswith("models/gemini"):
    return "gemini"
  return "openai"


def _canonical_gemini_model(model: str) -> str:
  model_name = str(model or "").strip()
  if not model_name:
    return "models/gemini-2.0-flash"
  if model_name.startswith("models/"):
    return model_name
  return f"models/{model_name}"


def get_agent_llm_settings(prefix: str) -> Dict[str, Optional[str]]:
  """
  Per-agent tuning from the environment, e.g. AGENT_INTENT_ROUTER_REASONING_EFFORT
  or AGENT_RESPONSE_GEMINI_THINKING_LEVEL.
  """
  prefix = prefix.upper().strip()
  return {
      "reasoning_effort": os.getenv(f"AGENT_{prefix}_OPENAI_REASONING_EFFORT") or os.getenv(f"AGENT_{prefix}_REASONING_EFFORT"),
      "gemini_thinking_level": os.getenv(f"AGENT_{prefix}_GEMINI_THINKING_LEVEL") or os.getenv(f"AGENT_{prefix}_THINKING_LEVEL"),
  }


# ---------------------------------------------------------------------------
#  JSON recovery
# ---------------------------------------------------------------------------

def _clean_json_text(text: str) -> str:
  cleaned = (text or "").strip()
  fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", cleaned)
  if fenced:
    return fenced.group(1).strip()
  return cleaned


def validate_structured_response(response_model: Type[T],
                                 raw_output: str) -> Optional[T]:
  """Parse model text into ``response_model``, tolerating code fences,
  surrounding prose and single-element JSON arrays."""
  if not raw_output:
    return None
  candidates = [raw_output, _clean_json_text(raw_output)]
  cleaned = candidates[-1]
  if cleaned:
    left = cleaned.find("{")
    right = cleaned.rfind("}")
    if left != -1 and right != -1 and right > left:
      candidates.append(cleaned[left:right + 1])
    if cleaned.startswith("["):
      try:
        arr = json.loads(cleaned)
      except ValueError:
        arr = None
      if isinstance(arr, list) and arr and isinstance(arr[0], dict):
        candidates.append(json.dumps(arr[0], ensure_ascii=False))
  seen = set()
  for candidate in candidates:
    text = (candidate or "").strip()
    if not text or text in seen:
      continue
    seen.add(text)
    try:
      return response_model.model_validate_json(text)
    except ValidationError:
      continue
  return None


# ---------------------------------------------------------------------------
#  Gemini
# ---------------------------------------------------------------------------

def _gemini_client_or_reason() -> Tuple[Any, Optional[str]]:
  global _gemini_client, _gemini_api_key_cached
  gemini_api_key = os.getenv("GEMINI_API_KEY", "").strip()
  if not gemini_api_key:
    return None, "gemini_api_key_missing"
  if _gemini_client is None or _gemini_api_key_cached != gemini_api_key:
    _gemini_client = genai.Client(api_key=gemini_api_key)
    _gemini_api_key_cached = gemini_api_key
  return _gemini_client, None


def _gemini_text_from_response(response: Any) -> str:
  text = getattr(response, "text", None)
  if isinstance(text, str) and text.strip():
    return text.strip()
  chunks = []
  for candidate in getattr(response, "candidates", None) or []:
    content = getattr(candidate, "content", None)
    for part in getattr(content, "parts", None) or []:
      text_val = getattr(part, "text", None)
      if isinstance(text_val, str) and text_val.strip():
        chunks.append(text_val.strip())
  return " ".join(chunks).strip()


def _gemini_thinking_level(override_level: Optional[str] = None) -> Optional[str]:
  raw = override_level
  if raw is None:
    raw = os.getenv("GEMINI_THINKING_LEVEL", _GEMINI_DEFAULT_THINKING_LEVEL)
  value = str(raw or "").strip().upper()
  if value in ("NONE", "MINIMAL", "LOW", "MEDIUM", "HIGH"):
    return value
  return None


def _gemini_config(max_completion_tokens: int,
                   json_mode: bool,
                   thinking_level: Optional[str] = None) -> genai_types.GenerateContentConfig:
  config: Dict[str, Any] = {}
  if json_mode:
    config["response_mime_type"] = "application/json"
  if isinstance(max_completion_tokens, int) and max_completion_tokens > 0:
    config["max_output_tokens"] = max_completion_tokens
  level = _gemini_thinking_level(thinking_level)
  if level and level != "NONE":
    config["thinking_config"] = {"thinking_level": level}
  return genai_types.GenerateContentConfig(**config)


def _compose_prompt(system_prompt: str,
                    user_content: str,
                    developer_prompt: Optional[str]) -> str:
  instruction = system_prompt
  if isinstance(developer_prompt, str) and developer_prompt.strip():
    instruction = f"{instruction}\n\n{developer_prompt.strip()}"
  return f"{instruction}\n\nUser:\n{user_content}"


def _gemini_structured_sync(client: Any, model: str, prompt: str,
                            response_model: Type[T],
                            max_completion_tokens: int,
                            thinking_level: Optional[str] = None) -> Tuple[Optional[T], str]:
  used_model = _canonical_gemini_model(model)
  config = _gemini_config(max_completion_tokens, json_mode=True,
                          thinking_level=thinking_level)

  response = client.models.generate_content(
      model=used_model, contents=prompt, config=config)
  raw_output = _gemini_text_from_response(response)
  parsed = validate_structured_response(response_model, raw_output)
  if parsed is not None:
    return parsed, raw_output

  print(f"[STRUCTURED #1] PARSE_FAIL model={used_model} schema={response_model.__name__} raw_len={len(raw_output)}", flush=True)

  # One retry with the schema fields and the rejected output echoed back.
  schema_fields = list(response_model.model_fields.keys())
  retry_prompt = prompt + (
      "\n\n[RETRY] Your previous response could not be parsed as valid JSON.\n"
      f"Expected fields: {json.dumps(schema_fields, ensure_ascii=False)}\n"
      f"Your previous output (first 500 chars): {raw_output[:500]}\n"
      "Return ONLY valid JSON. No markdown, no explanation.")
  response2 = client.models.generate_content(
      model=used_model, contents=retry_prompt, config=config)
  raw_output2 = _gemini_text_from_response(response2)
  return validate_structured_response(response_model, raw_output2), raw_output2 or raw_output


def _gemini_text_sync(client: Any, model: str, prompt: str,
                      max_completion_tokens: int,
                      thinking_level: Optional[str] = None) -> str:
  response = client.models.generate_content(
      model=_canonical_gemini_model(model),
      contents=prompt,
      config=_gemini_config(max_completion_tokens, json_mode=False,
                            thinking_level=thinking_level),
  )
  return _gemini_text_from_response(response)


# ---------------------------------------------------------------------------
#  OpenAI
# ---------------------------------------------------------------------------

def _compose_openai_messages(system_prompt: str,
                             developer_prompt: Optional[str],
                             user_content: str,
                             json_mode: bool) -> List[Dict[str, str]]:
  instruction = system_prompt
  if isinstance(developer_prompt, str) and developer_prompt.strip():
    instruction = f"{instruction}\n\n{developer_prompt.strip()}"
  # JSON mode requires the word "json" in the system prompt.
  if json_mode and "json" not in instruction.lower():
    instruction += "\n\nResponse must be a valid JSON object."
  return [
      {"role": "system", "content": instruction},
      {"role": "user", "content": user_content},
  ]


def _openai_kwargs(model: str, reasoning_effort: Optional[str],
                   max_completion_tokens: int) -> Dict[str, Any]:
  kwargs: Dict[str, Any] = {"model": model,
                            "max_completion_tokens": max_completion_tokens}
  if str(model).startswith(_OPENAI_REASONING_PREFIXES):
    kwargs["reasoning_effort"] = reasoning_effort or os.getenv(
        "OPENAI_REASONING_EFFORT", "low").strip() or "low"
  return kwargs


# ---------------------------------------------------------------------------
#  Public entry points
# ---------------------------------------------------------------------------

def _unavailable(model: str, provider: str, reason: str) -> Dict[str, Any]:
  return {
      "model": model,
      "provider": provider,
      "llm_available": False,
      "unavailable_reason": reason,
  }


def _failed(model: str, provider: str, error: str) -> Dict[str, Any]:
  return {
      "model": model,
      "provider": provider,
      "llm_available": True,
      "llm_output_empty_or_error": True,
      "llm_error": error,
  }


async def run_structured_completion(
    *,
    model: str,
    system_prompt: str,
    developer_prompt: Optional[str],
    user_payload: Dict[str, Any],
    response_model: Type[T],
    max_completion_tokens: int,
    reasoning_effort: Optional[str] = None,
    gemini_thinking_level: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Tuple[Optional[T], str, Dict[str, Any]]:
  """Returns ``(parsed | None, raw_text, meta)``; never raises."""
  provider = _provider_for_model(model)
  user_content = json.dumps(user_payload, ensure_ascii=False)
  limit = timeout if timeout is not None else LLM_TIMEOUT_SECONDS

  if provider == "gemini":
    client, unavailable_reason = _gemini_client_or_reason()
    if client is None:
      return None, "", _unavailable(model, provider, unavailable_reason or "")
    prompt = _compose_prompt(system_prompt, user_content, developer_prompt)
    try:
      parsed, raw_output = await asyncio.wait_for(
          asyncio.to_thread(_gemini_structured_sync, client, model, prompt,
                            response_model, max_completion_tokens,
                            gemini_thinking_level),
          timeout=limit)
    except asyncio.TimeoutError:
      print(f"[AGENT LLM ERROR] model={model} provider={provider} error=timeout after {limit}s", flush=True)
      return None, "", _failed(model, provider, "timeout")
    except Exception as exc:
      print(f"[AGENT LLM ERROR] model={model} provider={provider} error={exc}", flush=True)
      return None, "", _failed(model, provider, str(exc))
    _print_raw_output(kind="structured", provider=provider, model=model,
                      raw_output=raw_output)
    return parsed, raw_output, {"model": model, "provider": provider,
                                "llm_available": True}

  try:
    client = get_async_client()
  except RuntimeError as exc:
    return None, "", _unavailable(model, provider, str(exc))

  messages = _compose_openai_messages(system_prompt, developer_prompt,
                                      user_content, json_mode=True)
  try:
    completion = await asyncio.wait_for(
        client.chat.completions.create(
            messages=messages,
            response_format={"type": "json_object"},
            **_openai_kwargs(model, reasoning_effort, max_completion_tokens),
        ),
        timeout=limit)
  except asyncio.TimeoutError:
    print(f"[AGENT LLM ERROR] model={model} provider={provider} error=timeout after {limit}s", flush=True)
    return None, "", _failed(model, provider, "timeout")
  except Exception as exc:
    print(f"[AGENT LLM ERROR] model={model} provider={provider} error={exc}", flush=True)
    return None, "", _failed(model, provider, str(exc))

  raw_output = _first_choice_text(completion)
  if raw_output is None:
    print(f"[AGENT LLM ERROR] model={model} provider={provider} error=no choices", flush=True)
    return None, "", _failed(model, provider, "no choices")
  _print_raw_output(kind="structured", provider=provider, model=model,
                    raw_output=raw_output)
  parsed = validate_structured_response(response_model, raw_output)
  return parsed, raw_output, {"model": model, "provider": provider,
                              "llm_available": True}


async def run_text_completion(
    *,
    model: str,
    system_prompt: str,
    developer_prompt: Optional[str],
    user_payload: Dict[str, Any],
    max_completion_tokens: int,
    reasoning_effort: Optional[str] = None,
    gemini_thinking_level: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Tuple[str, Dict[str, Any]]:
  """Returns ``(text, meta)``; ``text`` is empty on any failure."""
  provider = _provider_for_model(model)
  user_content = json.dumps(user_payload, ensure_ascii=False)
  limit = timeout if timeout is not None else LLM_TIMEOUT_SECONDS

  if provider == "gemini":
    client, unavailable_reason = _gemini_client_or_reason()
    if client is None:
      return "", _unavailable(model, provider, unavailable_reason or "")
    prompt = _compose_prompt(system_prompt, user_content, developer_prompt)
    try:
      text = await asyncio.wait_for(
          asyncio.to_thread(_gemini_text_sync, client, model, prompt,
                            max_completion_tokens, gemini_thinking_level),
          timeout=limit)
    except asyncio.TimeoutError:
      print(f"[AGENT LLM ERROR] Gemini text model={model} error=timeout after {limit}s", flush=True)
      return "", _failed(model, provider, "timeout")
    except Exception as exc:
      print(f"[AGENT LLM ERROR] Gemini text model={model} error={exc}", flush=True)
      return "", _failed(model, provider, str(exc))
    _print_raw_output(kind="text", provider=provider, model=model, raw_output=text)
    return text, {"model": model, "provider": provider, "llm_available": True}

  try:
    client = get_async_client()
  except RuntimeError as exc:
    return "", _unavailable(model, provider, str(exc))

  messages = _compose_openai_messages(system_prompt, developer_prompt,
                                      user_content, json_mode=False)
  try:
    completion = await asyncio.wait_for(
        client.chat.completions.create(
            messages=messages,
            **_openai_kwargs(model, reasoning_effort, max_completion_tokens),
        ),
        timeout=limit)
  except asyncio.TimeoutError:
    print(f"[AGENT LLM ERROR] OpenAI text model={model} error=timeout after {limit}s", flush=True)
    return "", _failed(model, provider, "timeout")
  except Exception as exc:
    print(f"[AGENT LLM ERROR] OpenAI text model={model} error={exc}", flush=True)
    return "", _failed(model, provider, str(exc))

  text = _first_choice_text(completion)
  if text is None:
    print(f"[AGENT LLM ERROR] OpenAI text model={model} error=no choices", flush=True)
    return "", _failed(model, provider, "no choices")
  _print_raw_output(kind="text", provider=provider, model=model, raw_output=text)
  return text, {"model": model, "provider": provider, "llm_available": True}
