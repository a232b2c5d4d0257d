"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

CONFIG_DIR = Path.home() / ".blockterm"
CONFIG_FILE = CONFIG_DIR / "config.toml"

PROVIDERS: dict[str, str] = {
    "gemini": "gemini-1.5-flash",
    "openai": "gpt-4",
}

DEFAULT_EXTENSIONS: list[str] = [
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".cpp", ".c", ".h",
    ".json", ".md", ".txt", ".css", ".html", ".xml", ".yaml", ".yml", ".toml",
]


@dataclass
class AIConfig:
    provider: str = "gemini"
    api_key: str = ""
    model: str = ""
    max_tokens: int = 4000
    temperature: float = 0.7
    timeout: int = 60

    @property
    def resolved_model(self) -> str:
        return self.model or PROVIDERS.get(self.provider, "")


@dataclass
class FilesConfig:
    project_root: str = "."
    max_file_size: int = 1_000_000
    allowed_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))


@dataclass
class ShellConfig:
    timeout: int = 0
    cwd: str = "."


@dataclass
class StorageConfig:
    db_path: str = "~/.blockterm/sessions.db"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = "~/.blockterm/blockterm.log"


@dataclass
class AppConfig:
    ai: AIConfig = field(default_factory=AIConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def _split_extensions(value: str) -> list[str]:
    exts = [e.strip().lower() for e in value.split(",") if e.strip()]
    return [e if e.startswith(".") else f".{e}" for e in exts]


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        ai = data.get("ai", {})
        config.ai.provider = ai.get("provider", config.ai.provider)
        config.ai.api_key = ai.get("api_key", config.ai.api_key)
        config.ai.model = ai.get("model", config.ai.model)
        config.ai.max_tokens = ai.get("max_tokens", config.ai.max_tokens)
        config.ai.temperature = ai.get("temperature", config.ai.temperature)
        config.ai.timeout = ai.get("timeout", config.ai.timeout)

        files = data.get("files", {})
        config.files.project_root = files.get("project_root", config.files.project_root)
        config.files.max_file_size = files.get("max_file_size", config.files.max_file_size)
        config.files.allowed_extensions = files.get("allowed_extensions", config.files.allowed_extensions)

        shell = data.get("shell", {})
        config.shell.timeout = shell.get("timeout", config.shell.timeout)
        config.shell.cwd = shell.get("cwd", config.shell.cwd)

        storage = data.get("storage", {})
        config.storage.db_path = storage.get("db_path", config.storage.db_path)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_provider := os.environ.get("BLOCKTERM_AI_PROVIDER"):
        config.ai.provider = env_provider.lower()
    if env_model := os.environ.get("BLOCKTERM_MODEL"):
        config.ai.model = env_model
    if env_max_tokens := os.environ.get("BLOCKTERM_MAX_TOKENS"):
        config.ai.max_tokens = int(env_max_tokens)
    if not config.ai.api_key:
        key_var = f"{config.ai.provider.upper()}_API_KEY"
        config.ai.api_key = os.environ.get(key_var, "")
    if env_root := os.environ.get("BLOCKTERM_PROJECT_ROOT"):
        config.files.project_root = env_root
    if env_max_size := os.environ.get("BLOCKTERM_MAX_FILE_SIZE"):
        config.files.max_file_size = int(env_max_size)
    if env_exts := os.environ.get("BLOCKTERM_ALLOWED_EXTENSIONS"):
        config.files.allowed_extensions = _split_extensions(env_exts)
    if env_shell_timeout := os.environ.get("BLOCKTERM_SHELL_TIMEOUT"):
        config.shell.timeout = int(env_shell_timeout)
    if env_db := os.environ.get("BLOCKTERM_DB_PATH"):
        config.storage.db_path = env_db
    if env_log_level := os.environ.get("BLOCKTERM_LOG_LEVEL"):
        config.logging.level = env_log_level

    return config


def _sections(config: AppConfig) -> dict[str, object]:
    return {
        "ai": config.ai,
        "files": config.files,
        "shell": config.shell,
        "storage": config.storage,
        "logging": config.logging,
    }


def config_items(config: AppConfig) -> list[tuple[str, object]]:
    """Flatten the config into (dotted key, value) pairs."""
    return [
        (f"{name}.{attr}", current)
        for name, section in _sections(config).items()
        for attr, current in vars(section).items()
    ]


def set_value(config: AppConfig, key: str, raw: str) -> object:
    """Set a dotted key from its string form, converted to the field's type.

    Raises KeyError for an unknown section or field and ValueError when the
    string does not convert.
    """
    name, sep, attr = key.partition(".")
    section = _sections(config).get(name)
    if not sep or section is None or attr not in vars(section):
        raise KeyError(key)

    current = getattr(section, attr)
    if isinstance(current, bool):
        value: object = raw.lower() in ("true", "1", "yes")
    elif isinstance(current, int):
        value = int(raw)
    elif isinstance(current, float):
        value = float(raw)
    elif isinstance(current, list):
        value = _split_extensions(raw) if attr == "allowed_extensions" else [v.strip() for v in raw.split(",") if v.strip()]
    else:
        value = raw
    setattr(section, attr, value)
    return value


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "ai": {
            "provider": config.ai.provider,
            "api_key": config.ai.api_key,
            "model": config.ai.model,
            "max_tokens": config.ai.max_tokens,
            "temperature": config.ai.temperature,
            "timeout": config.ai.timeout,
        },
        "files": {
            "project_root": config.files.project_root,
            "max_file_size": config.files.max_file_size,
            "allowed_extensions": config.files.allowed_extensions,
        },
        "shell": {
            "timeout": config.shell.timeout,
            "cwd": config.shell.cwd,
        },
        "storage": {
            "db_path": config.storage.db_path,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)

