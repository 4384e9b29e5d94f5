"""Session settings and their encrypted on-disk persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..ai.client import ClientSettings

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
SETTINGS_VERSION = 1
_SETTINGS_DIR = Path.home() / ".boundedchat"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_CIPHERTEXT_KEY = "api_key_ciphertext"
_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "debug"})


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


# environment variable -> (settings field, parser)
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "BOUNDEDCHAT_API_KEY": ("api_key", str),
    "BOUNDEDCHAT_BASE_URL": ("base_url", str),
    "BOUNDEDCHAT_MODEL": ("model", str),
    "BOUNDEDCHAT_ORGANIZATION": ("organization", str),
    "BOUNDEDCHAT_USER_AGENT": ("user_agent", str),
    "BOUNDEDCHAT_DEBUG_LOGGING": ("debug_logging", _to_bool),
    "BOUNDEDCHAT_WEB_ANALYSER": ("web_analyser_enabled", _to_bool),
    "BOUNDEDCHAT_MAX_TOKENS": ("max_tokens", int),
    "BOUNDEDCHAT_SAFE_TOKEN_LIMIT": ("safe_token_limit", int),
    "BOUNDEDCHAT_MAX_RETRIES": ("max_retries", int),
    "BOUNDEDCHAT_REQUEST_TIMEOUT": ("request_timeout", float),
    "BOUNDEDCHAT_TEMPERATURE": ("temperature", float),
    "BOUNDEDCHAT_TOOL_TIMEOUT": ("tool_timeout", float),
}


@dataclass(slots=True)
class Settings:
    """Backend connection, context budget, and tool options for a session."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    max_tokens: int = 4_096
    safe_token_limit: int = 3_500
    web_analyser_enabled: bool = True
    tool_timeout: float = 10.0
    user_agent: str = "boundedchat-web-analyser/0.1"
    debug_logging: bool = False
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, str] = field(default_factory=dict)

    def client_settings(self) -> ClientSettings:
        """Return the connection options consumed by :class:`AIClient`."""

        return ClientSettings(
            base_url=self.base_url,
            api_key=self.api_key,
            model=self.model,
            organization=self.organization,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            retry_min_seconds=self.retry_min_seconds,
            retry_max_seconds=self.retry_max_seconds,
            temperature=self.temperature,
            default_headers=dict(self.default_headers) or None,
            metadata=dict(self.metadata) or None,
            debug_logging=self.debug_logging,
        )

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(item.name for item in fields(cls))


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON with the API key encrypted.

    Precedence, lowest first: defaults, the settings file, ``overrides``
    passed to :meth:`load`, then ``BOUNDEDCHAT_*`` environment variables.
    """

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        stored = self._read()
        settings, needs_rewrite = self._decode(stored) if stored else (Settings(), False)
        if needs_rewrite:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - read-only home directories
                LOGGER.warning("Could not rewrite settings file %s: %s", self._path, exc)
        if overrides:
            settings = _merge(settings, overrides, source="caller")
        return _merge(settings, _environment_overrides(), source="environment")

    def save(self, settings: Settings) -> Path:
        """Write *settings* atomically and return the file path."""

        body = json.dumps(self._encode(settings), indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".tmp")
        staging.write_text(body, encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read(self) -> Dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _decode(self, stored: Dict[str, Any]) -> tuple[Settings, bool]:
        """Build settings from a stored payload; the flag asks for a rewrite."""

        ciphertext = stored.pop(_CIPHERTEXT_KEY, None)
        plaintext = stored.pop("api_key", None)
        outdated = stored.pop("version", None) != SETTINGS_VERSION
        known = {key: value for key, value in stored.items() if key in Settings.field_names()}
        try:
            settings = Settings(**known)
        except TypeError as exc:
            LOGGER.warning("Settings file contained unexpected data: %s", exc)
            settings = Settings()

        api_key = ""
        if ciphertext:
            try:
                api_key = self._vault.decrypt(ciphertext)
            except ValueError as exc:
                LOGGER.warning("Stored API key could not be decrypted: %s", exc)
        elif plaintext:
            LOGGER.info("Encrypting plaintext API key found in %s", self._path)
            api_key = str(plaintext)
            outdated = True
        if api_key:
            settings = replace(settings, api_key=api_key)
        return settings, outdated

    def _encode(self, settings: Settings) -> Dict[str, Any]:
        payload = asdict(settings)
        api_key = payload.pop("api_key", "")
        if api_key:
            payload[_CIPHERTEXT_KEY] = self._vault.encrypt(api_key)
        payload["version"] = SETTINGS_VERSION
        return payload


class SecretVault:
    """Fernet encryption for secrets, keyed by a file created on first use."""

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        return self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        try:
            return self._cipher().decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Secret was not encrypted with this vault's key") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._key())
        return self._fernet

    def _key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = self._key_path.with_suffix(".tmp")
        staging.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(staging, 0o600)
        staging.replace(self._key_path)
        return key


def _environment_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, (field_name, parse) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            overrides[field_name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: expected %s", env_name, raw, parse.__name__)
    return overrides


def _merge(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    applicable = {
        key: value for key, value in overrides.items() if key in Settings.field_names() and value is not None
    }
    if not applicable:
        return settings
    LOGGER.debug("Applying %s settings overrides: %s", source, sorted(applicable))
    return replace(settings, **applicable)


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of *value*."""

    stripped = (value or "").strip()
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
