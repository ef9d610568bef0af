"""Anthropic Messages API client.

The client holds its own configuration so it can be called from worker
threads that have no Flask application context.
"""
from typing import Iterable, List, Optional

import httpx
from flask import current_app

from .errors import ExternalServiceError


def _as_payload(messages: Iterable[dict]) -> List[dict]:
    return [{"role": m["role"], "content": m["content"]} for m in messages]


def _response_text(response: httpx.Response) -> str:
    """Concatenated text blocks of a Messages API reply; anything malformed is an ExternalServiceError."""
    try:
        data = response.json()
    except ValueError as exc:
        raise ExternalServiceError("AI response was not valid JSON") from exc
    if not isinstance(data, dict):
        raise ExternalServiceError("AI response had an unexpected shape")
    blocks = data.get("content") or []
    if not isinstance(blocks, list):
        raise ExternalServiceError("AI response had an unexpected shape")
    text = "".join(
        b.get("text") or ""
        for b in blocks
        if isinstance(b, dict) and b.get("type") == "text" and isinstance(b.get("text"), str)
    )
    if not text:
        raise ExternalServiceError("AI response contained no text")
    return text


class AIClient:
    def __init__(
        self,
        api_key: Optional[str],
        *,
        api_url: str = "https://api.anthropic.com/v1/messages",
        api_version: str = "2023-06-01",
        default_model: str = "claude-haiku-4-5-20251001",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.api_version = api_version
        self.default_model = default_model
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "AIClient":
        return cls(
            config.get("ANTHROPIC_API_KEY"),
            api_url=config.get("ANTHROPIC_API_URL", "https://api.anthropic.com/v1/messages"),
            api_version=config.get("ANTHROPIC_API_VERSION", "2023-06-01"),
            default_model=config.get("AI_CHAT_MODEL", "claude-haiku-4-5-20251001"),
            timeout=float(config.get("AI_TIMEOUT_SECONDS", 60)),
        )

    def complete(
        self,
        system: str,
        messages: Iterable[dict],
        max_tokens: int,
        model: Optional[str] = None,
    ) -> str:
        """One completion; returns the concatenated text blocks.

        Any transport or API failure is raised as ExternalServiceError.
        """
        if not self.api_key:
            raise ExternalServiceError("AI client is not configured (ANTHROPIC_API_KEY missing)")
        body = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "messages": _as_payload(messages),
        }
        if system:
            body["system"] = system
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    self.api_url,
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": self.api_version,
                        "content-type": "application/json",
                    },
                    json=body,
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"AI request failed: {exc}") from exc
        return _response_text(response)


def get_ai_client():
    return current_app.extensions["ai_client"]
