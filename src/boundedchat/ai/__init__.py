"""AI client, prompts, and chat session orchestration."""

from .client import AIClient, AIStreamEvent, ClientSettings

__all__ = ["AIClient", "AIStreamEvent", "ClientSettings"]
