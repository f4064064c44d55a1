# -- coding: utf-8 --
"""OpenAI-compatible chat-completions client for vision prompts."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Dict, Optional, Sequence

import aiohttp

from inference.base import InferenceConfig, InferenceError, register_inference

L = logging.getLogger("camera_ai_bridge.inference.openai")

_BODY_PREVIEW = 500


def build_request_body(
    model: str,
    images: Sequence[bytes],
    prompt: str,
    *,
    max_tokens: int = 300,
    response_format: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    content: list[Dict[str, Any]] = [{"type": "text", "text": prompt}]
    for data in images:
        b64 = base64.b64encode(data).decode("ascii")
        content.append(
            {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{b64}"}}
        )
    body: Dict[str, Any] = {
        "model": model,
        "messages": [{"role": "user", "content": content}],
        "max_tokens": int(max_tokens),
    }
    if response_format:
        body["response_format"] = response_format
    return body


@register_inference("openai_chat")
class OpenAiChatClient:
    def __init__(self, cfg: InferenceConfig):
        self.cfg = cfg
        self._session: aiohttp.ClientSession | None = None
        L.info("AI client using endpoint=%s model=%s", cfg.endpoint, cfg.model)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.cfg.timeout_s),
                headers={
                    "Authorization": f"Bearer {self.cfg.api_token}",
                    "Content-Type": "application/json",
                },
            )
        return self._session

    async def infer(
        self,
        images: Sequence[bytes],
        prompt: str,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        body = build_request_body(
            self.cfg.model,
            images,
            prompt,
            max_tokens=self.cfg.max_tokens,
            response_format=response_format,
        )
        if response_format:
            L.debug(
                "Using structured output with schema: %s",
                (response_format.get("json_schema") or {}).get("name"),
            )
        L.info(
            "Sending %d image(s) to AI endpoint %s", len(images), self.cfg.endpoint
        )
        session = self._get_session()
        try:
            async with session.post(self.cfg.endpoint, json=body) as resp:
                text = await resp.text()
                if resp.status < 200 or resp.status >= 300:
                    L.error(
                        "AI endpoint HTTP %d: %s", resp.status, text[:_BODY_PREVIEW]
                    )
                    raise InferenceError(
                        f"AI endpoint returned HTTP {resp.status}",
                        status=resp.status,
                        body=text[:_BODY_PREVIEW],
                    )
        except asyncio.TimeoutError as e:
            raise InferenceError(
                f"AI request timed out after {self.cfg.timeout_s:g}s"
            ) from e
        except aiohttp.ClientError as e:
            raise InferenceError(f"AI request failed: {e}") from e

        try:
            data = json.loads(text)
        except ValueError as e:
            raise InferenceError(
                "AI endpoint returned invalid JSON",
                status=resp.status,
                body=text[:_BODY_PREVIEW],
            ) from e
        if not isinstance(data, dict):
            raise InferenceError(
                "AI endpoint returned a non-object body", status=resp.status
            )
        L.info("AI response received (HTTP %d)", resp.status)
        L.debug("AI response data: %s", text[:_BODY_PREVIEW])
        return data

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["OpenAiChatClient", "build_request_body"]
