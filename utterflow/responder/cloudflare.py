"""
CloudflareResponder: assistant replies via Cloudflare Workers AI (text generation).

Raises ValueError when credentials are missing; httpx.HTTPStatusError on API errors.
"""
from __future__ import annotations

import logging

import httpx

from utterflow.config import get_settings
from utterflow.responder.base import ResponseGenerator

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """You are a meeting assistant listening to a live multi-speaker conversation.
Someone just asked something. Answer briefly and directly (one to three sentences).

Rules:
- Use the recent transcript only as background; do not repeat it.
- Do not invent facts. If you do not know, say so.
- Plain text only, no markdown."""


def _build_messages(text: str, context: list[str] | None) -> list[dict[str, str]]:
    user_content = text.strip()
    if context:
        joined = "\n".join(context)
        user_content = f"Recent transcript (read-only):\n{joined}\n\nUtterance to answer: {user_content}"
    return [
        {"role": "system", "content": _SYSTEM_PROMPT},
        {"role": "user", "content": user_content},
    ]


def _extract_reply(data: dict) -> str:
    result = data.get("result", data)
    if isinstance(result, dict):
        content = result.get("response", "") or ""
    elif isinstance(result, str):
        content = result
    else:
        content = ""
    return (content or "").strip()


class CloudflareResponder(ResponseGenerator):
    def __init__(
        self,
        account_id: str | None = None,
        api_token: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout_sec: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._account_id = (account_id if account_id is not None else settings.CLOUDFLARE_ACCOUNT_ID).strip()
        self._api_token = (api_token if api_token is not None else settings.CLOUDFLARE_API_TOKEN).strip()
        self._model = model or settings.RESPONDER_CF_MODEL
        self._max_tokens = max_tokens or settings.RESPONDER_MAX_TOKENS
        self._timeout_sec = timeout_sec or settings.RESPONDER_TIMEOUT_SEC
        self._transport = transport

    @property
    def name(self) -> str:
        return "cloudflare"

    async def generate(self, text: str, context: list[str] | None = None) -> str:
        if not self._account_id or not self._api_token:
            raise ValueError("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required for the responder")
        if not (text or "").strip():
            return ""

        url = f"https://api.cloudflare.com/client/v4/accounts/{self._account_id}/ai/run/{self._model}"
        payload = {
            "messages": _build_messages(text, context),
            "max_tokens": self._max_tokens,
            "temperature": 0.4,
        }
        logger.info(
            "Responder request: model=%s, max_tokens=%s, utterance_len=%s, context_lines=%s",
            self._model, self._max_tokens, len(text), len(context or []),
        )

        async with httpx.AsyncClient(timeout=self._timeout_sec, transport=self._transport) as client:
            resp = await client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_token}", "Content-Type": "application/json"},
            )
            resp.raise_for_status()
            data = resp.json()

        return _extract_reply(data)
