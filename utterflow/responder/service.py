"""
Responder service: pick backend from config.
- cloudflare: Workers AI text generation.
- none: no replies (utterances are still detected and reported).
"""
from __future__ import annotations

import logging

from utterflow.config import get_settings
from utterflow.responder.base import ResponseGenerator
from utterflow.responder.cloudflare import CloudflareResponder

logger = logging.getLogger(__name__)


def get_responder() -> ResponseGenerator | None:
    """Return responder from config (cloudflare / none)."""
    settings = get_settings()
    backend = (getattr(settings, "RESPONDER_BACKEND", "") or "none").strip().lower()
    if backend in ("none", ""):
        return None
    if backend == "cloudflare":
        return CloudflareResponder()
    logger.warning("Unknown RESPONDER_BACKEND=%s; use cloudflare or none", backend)
    return None
