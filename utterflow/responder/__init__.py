"""
Responder: AI reply for utterances that should be answered.

- cloudflare: Cloudflare Workers AI.
- none: disabled.
"""
from __future__ import annotations

from utterflow.responder.base import ResponseGenerator
from utterflow.responder.cloudflare import CloudflareResponder
from utterflow.responder.service import get_responder

__all__ = ["ResponseGenerator", "CloudflareResponder", "get_responder"]
