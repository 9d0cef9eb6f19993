"""Configuration models, YAML loading, and hotkey validation."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

from shadow_prompt.errors import ConfigError
from shadow_prompt.types import EventKind, Rgb

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")

_KEY_ALIASES = {
    "control": "ctrl",
    "win": "meta",
    "super": "meta",
    "cmd": "meta",
    "return": "enter",
    "escape": "esc",
}
_KNOWN_KEYS = frozenset(
    {"ctrl", "shift", "alt", "meta", "space", "enter", "esc", "tab", "backspace", "capslock"}
    | {f"f{i}" for i in range(1, 13)}
    | set("abcdefghijklmnopqrstuvwxyz0123456789")
)
# Earlier actions win when two bindings resolve to the same combo.
_REGISTRATION_ORDER = (EventKind.PANIC, EventKind.WAKE, EventKind.MODEL, EventKind.HIDE)


def parse_hex_color(value: str) -> Rgb:
    """Parse `#RRGGBB` (leading `#` optional) into an `Rgb` triple."""
    match = _HEX_COLOR.match(value.strip())
    if not match:
        raise ValueError(f"Invalid color {value!r}; expected #RRGGBB")
    digits = match.group(1)
    return Rgb(int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


def parse_hotkey(combo: str) -> tuple[frozenset[str], list[str]]:
    """Normalize a combo like ``Ctrl + Shift+V`` and report unknown key names."""
    keys: set[str] = set()
    unknown: list[str] = []
    for part in combo.split("+"):
        name = part.strip().lower()
        if not name:
            continue
        name = _KEY_ALIASES.get(name, name)
        if name not in _KNOWN_KEYS:
            unknown.append(part.strip())
            continue
        keys.add(name)
    return frozenset(keys), unknown


@dataclass(slots=True)
class HotkeyBindings:
    """Resolved combo -> action map plus any non-fatal warnings."""

    actions: dict[frozenset[str], EventKind] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


class HotkeyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    wake: str = "Ctrl+Shift+Space"
    model: str = "Ctrl+Shift+V"
    panic: str = "Ctrl+Shift+F12"
    hide: str = "Ctrl+Shift+H"

    def resolve(self) -> HotkeyBindings:
        """Build the binding map; conflicts keep the first-registered action."""
        bindings = HotkeyBindings()
        for kind in _REGISTRATION_ORDER:
            combo_text = getattr(self, kind.value)
            combo, unknown = parse_hotkey(combo_text)
            for name in unknown:
                bindings.warnings.append(f"Unknown key {name!r} in {kind.value} hotkey {combo_text!r}")
            if not combo:
                bindings.warnings.append(f"Hotkey for {kind.value} is empty and will never fire")
                continue
            owner = bindings.actions.get(combo)
            if owner is not None:
                bindings.warnings.append(
                    f"Hotkey {combo_text!r} for {kind.value} overlaps {owner.value}; "
                    f"{owner.value} keeps the binding"
                )
                continue
            bindings.actions[combo] = kind
        return bindings


class ProviderKind(str, Enum):
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    GROQ = "groq"
    OLLAMA = "ollama"


DEFAULT_ENDPOINTS: dict[ProviderKind, str | None] = {
    ProviderKind.OPENAI: None,
    ProviderKind.OPENROUTER: "https://openrouter.ai/api/v1",
    ProviderKind.GROQ: "https://api.groq.com/openai/v1",
    ProviderKind.OLLAMA: "http://localhost:11434/v1",
}


class ProviderSpec(BaseModel):
    """One answer-provider; immutable once loaded."""

    model_config = ConfigDict(extra="forbid", frozen=True, protected_namespaces=())

    name: str = Field(min_length=1)
    kind: ProviderKind = ProviderKind.OPENAI
    endpoint: str | None = None
    credential: SecretStr | None = None
    credential_env: str | None = None
    model_id: str = Field(min_length=1)
    priority: int = Field(default=0, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0.0)

    def resolved_endpoint(self) -> str | None:
        return self.endpoint or DEFAULT_ENDPOINTS[self.kind]

    def resolved_credential(self) -> str | None:
        if self.credential is not None:
            return self.credential.get_secret_value()
        if self.credential_env:
            return os.environ.get(self.credential_env) or None
        return None


class ChainMode(str, Enum):
    STRICT = "strict"
    FALLBACK = "fallback"


class ProvidersConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: ChainMode = ChainMode.FALLBACK
    providers: list[ProviderSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_providers(self) -> "ProvidersConfig":
        if self.mode is ChainMode.STRICT and len(self.providers) != 1:
            raise ValueError("strict mode requires exactly one provider")
        names = [spec.name for spec in self.providers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate provider names: {duplicates}")
        return self

    def ordered(self) -> list[ProviderSpec]:
        """Providers in fallback order (priority ascending, file order on ties)."""
        return sorted(self.providers, key=lambda spec: spec.priority)


class RagConfig(BaseModel):
    """Configures local knowledge retrieval."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    knowledge_dir: str = "knowledge"
    index_path: str = "data/rag_index.json"
    max_results: int = Field(default=3, ge=1)
    min_score: float = Field(default=0.5, ge=-1.0, le=1.0)
    timeout_seconds: float = Field(default=2.0, gt=0.0)


class SearchEngine(str, Enum):
    DUCKDUCKGO = "duckduckgo"
    SERPER = "serper"


class SearchConfig(BaseModel):
    """Configures web search snippets added to the provider context.

    Off by default: enabling it sends every question to the search engine.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    engine: SearchEngine = SearchEngine.DUCKDUCKGO
    max_results: int = Field(default=3, ge=1, le=10)
    serper_api_key: SecretStr | None = None
    serper_api_key_env: str | None = "SERPER_API_KEY"
    timeout_seconds: float = Field(default=3.0, gt=0.0)

    def resolved_serper_key(self) -> str | None:
        if self.serper_api_key is not None:
            return self.serper_api_key.get_secret_value()
        if self.serper_api_key_env:
            return os.environ.get(self.serper_api_key_env) or None
        return None


class UsageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    daily_limit: int | None = Field(default=100, ge=1)
    db_path: str = "data/usage.db"


class ClassifierConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identification_max_length: int = Field(default=120, ge=1)
    no_answer_text: str = Field(default="N/A", min_length=1)


class ColorMap(BaseModel):
    """Overlay colors per state, as `#RRGGBB` strings."""

    model_config = ConfigDict(extra="forbid")

    ready: str = "#00FF00"
    processing: str = "#FF0000"
    mcq_a: str = "#00FFFF"
    mcq_b: str = "#FF00FF"
    mcq_c: str = "#FFFF00"
    mcq_d: str = "#000000"
    mcq_none: str = "#FFFFFF"
    true: str = "#00FF00"
    false: str = "#800000"
    limit_exceeded: str = "#FFA500"
    error: str = "#800080"

    @field_validator("*")
    @classmethod
    def _validate_hex(cls, value: str) -> str:
        parse_hex_color(value)
        return value

    def rgb(self, name: str) -> Rgb:
        return parse_hex_color(getattr(self, name))


class VisualsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    colors: ColorMap = Field(default_factory=ColorMap)
    text_overlay_enabled: bool = True


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = "INFO"
    file: str | None = "data/logs/shadow_prompt.log"

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level


class ApiConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)


class AppConfig(BaseModel):
    """Validated configuration handed from the setup phase to the daemon."""

    model_config = ConfigDict(extra="forbid")

    hotkeys: HotkeyConfig = Field(default_factory=HotkeyConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    rag: RagConfig = Field(default_factory=RagConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    visuals: VisualsConfig = Field(default_factory=VisualsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate a YAML configuration file.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or does not
            match the schema.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if raw is None:
        raise ConfigError(f"Config file is empty: {config_path}")
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{exc}") from exc


def default_config() -> AppConfig:
    """Starter configuration with one OpenRouter provider read from the environment."""
    return AppConfig(
        providers=ProvidersConfig(
            mode=ChainMode.FALLBACK,
            providers=[
                ProviderSpec(
                    name="openrouter",
                    kind=ProviderKind.OPENROUTER,
                    credential_env="OPENROUTER_API_KEY",
                    model_id="openai/gpt-4o-mini",
                    priority=0,
                ),
                ProviderSpec(
                    name="local-ollama",
                    kind=ProviderKind.OLLAMA,
                    model_id="llama3",
                    priority=1,
                    timeout_seconds=60.0,
                ),
            ],
        )
    )


def dump_config(config: AppConfig, path: str | Path) -> Path:
    """Write `config` as YAML, creating parent directories.

    Literal secrets are written in clear text so the file loads back with
    the same credentials; prefer `credential_env` for shared files.
    """
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(mode="json")
    for spec, entry in zip(config.providers.providers, payload["providers"]["providers"]):
        if spec.credential is not None:
            entry["credential"] = spec.credential.get_secret_value()
    if config.search.serper_api_key is not None:
        payload["search"]["serper_api_key"] = config.search.serper_api_key.get_secret_value()
    config_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return config_path
