"""LLM completion service using OpenAI-compatible APIs.

The rest of the tagger only sees two things from this module:

    LLMService.complete(prompt) -> str     (raises ServiceError)
    parse_json_object(text)     -> dict    (raises ValueError)

so merge and extraction logic never touch raw response shapes. Works with
any OpenAI-compatible endpoint (OpenAI, LiteLLM, Ollama).
"""

from __future__ import annotations

import json
import re

from loguru import logger

from .errors import ServiceError

log = logger.bind(stage="ai")

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def get_client(base_url: str, api_key: str):
    """Return an OpenAI client configured for the given endpoint, or None.

    Returns None if neither base_url nor api_key is set (AI disabled). An
    empty base_url with a key targets the default OpenAI endpoint.
    """
    if not base_url and not api_key:
        return None

    from openai import OpenAI

    if not base_url:
        return OpenAI(api_key=api_key)

    # OpenAI SDK expects base_url WITHOUT /v1 -- it appends that itself
    clean_url = base_url.rstrip("/")
    if clean_url.endswith("/v1"):
        clean_url = clean_url[:-3].rstrip("/")

    return OpenAI(
        base_url=clean_url,
        api_key=api_key or "not-needed",
    )


class LLMService:
    """Typed completion capability over an OpenAI-style client."""

    def __init__(self, client, model: str) -> None:
        self.client = client
        self.model = model

    @classmethod
    def from_config(cls, config) -> LLMService | None:
        """Build from TaggerConfig, or None when no LLM is configured."""
        client = get_client(config.pipeline_llm_base_url, config.pipeline_llm_api_key)
        if client is None:
            return None
        return cls(client, config.pipeline_llm_model)

    def complete(
        self,
        prompt: str,
        system: str = "Return valid JSON only.",
        max_tokens: int = 1000,
    ) -> str:
        """Send one chat completion and return the trimmed text content.

        Raises ServiceError on transport/API errors or empty content.
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=0.2,
                extra_headers={"Cache-Control": "no-cache"},
            )
        except Exception as e:
            raise ServiceError("llm", str(e)) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise ServiceError("llm", f"malformed response: {e}") from e

        content = (content or "").strip()
        if not content:
            raise ServiceError("llm", "empty content")
        log.debug(f"LLM response ({len(content)} chars): {content[:200]!r}")
        return content


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ``` / ```json markdown fence, if any."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_json_object(text: str) -> dict:
    """Decode an LLM response into a JSON object.

    Strips markdown fences; falls back to the outermost {...} span when the
    model wraps JSON in prose. Raises ValueError if no object is found.
    """
    body = strip_code_fence(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        start, end = body.find("{"), body.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("no JSON object in response")
        try:
            data = json.loads(body[start : end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"expected JSON object, got {type(data).__name__}")
    return data
