"""
ResponseGenerator interface: final utterance text in, assistant reply out.
Implementations: CloudflareResponder (Workers AI).
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class ResponseGenerator(ABC):
    """Abstract AI responder. generate() is async and may fail (caller logs and moves on)."""

    @abstractmethod
    async def generate(self, text: str, context: list[str] | None = None) -> str:
        """
        Produce a reply for one utterance.
        - context: recent transcript lines ("[speaker] text"), oldest first; read-only background.
        Returns the reply text ("" when the backend produced nothing).
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name for logs/stats, e.g. 'cloudflare'."""
        ...
