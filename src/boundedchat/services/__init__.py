"""Service layer helpers (settings, telemetry)."""

from .settings import SecretVault, Settings, SettingsStore, redact_secret
from .telemetry import InMemoryTelemetrySink, TurnEvent, TurnStats, emit, summarize_turns

__all__ = [
    "InMemoryTelemetrySink",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "TurnEvent",
    "TurnStats",
    "emit",
    "redact_secret",
    "summarize_turns",
]
