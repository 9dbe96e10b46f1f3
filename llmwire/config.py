import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

import dotenv

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ProviderSettings:
    """Credentials and endpoint overrides for one provider."""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    organization: Optional[str] = None
    http_referer: Optional[str] = None
    app_title: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    """
    Library settings.

    Each provider is configured independently; providers without an API key
    are simply not registered.
    """
    openai: ProviderSettings = field(default_factory=ProviderSettings)
    anthropic: ProviderSettings = field(default_factory=ProviderSettings)
    gemini: ProviderSettings = field(default_factory=ProviderSettings)
    grok: ProviderSettings = field(default_factory=ProviderSettings)
    openrouter: ProviderSettings = field(default_factory=ProviderSettings)
    timeout: float = DEFAULT_TIMEOUT
    log_level: Optional[str] = None

    @classmethod
    def from_mapping(cls, env: Mapping[str, str]) -> "Settings":
        """
        Build settings from environment-style variables.

        Args:
            env (Mapping[str, str]): Usually ``os.environ``.

        Returns:
            Settings: Parsed settings. Empty values count as unset.
        """
        def get(name: str) -> Optional[str]:
            value = env.get(name)
            if not isinstance(value, str):
                return None
            return value.strip() or None

        timeout = get("LLMWIRE_TIMEOUT")
        try:
            timeout_value = float(timeout) if timeout else DEFAULT_TIMEOUT
        except ValueError:
            raise ValueError(f"LLMWIRE_TIMEOUT must be a number of seconds, got {timeout!r}") from None

        return cls(
            openai=ProviderSettings(
                api_key=get("OPENAI_API_KEY"),
                base_url=get("OPENAI_BASE_URL"),
                organization=get("OPENAI_ORGANIZATION"),
            ),
            anthropic=ProviderSettings(
                api_key=get("ANTHROPIC_API_KEY"),
                base_url=get("ANTHROPIC_BASE_URL"),
            ),
            gemini=ProviderSettings(
                api_key=get("GOOGLE_API_KEY") or get("GEMINI_API_KEY"),
                base_url=get("GEMINI_BASE_URL"),
            ),
            grok=ProviderSettings(
                api_key=get("XAI_API_KEY"),
                base_url=get("XAI_BASE_URL"),
            ),
            openrouter=ProviderSettings(
                api_key=get("OPENROUTER_API_KEY"),
                base_url=get("OPENROUTER_BASE_URL"),
                http_referer=get("OPENROUTER_HTTP_REFERER"),
                app_title=get("OPENROUTER_APP_TITLE"),
            ),
            timeout=timeout_value,
            log_level=get("LLMWIRE_LOG_LEVEL"),
        )


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """
    Load settings from the environment, reading ``env_file`` first.

    Values already present in the real environment win over the file.
    """
    if env_file:
        dotenv.load_dotenv(env_file, override=False)
    return Settings.from_mapping(os.environ)
