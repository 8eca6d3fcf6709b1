"""
Application settings.

Pydantic models loaded from YAML (mdagent.yaml plus an optional mdagent.dev.yaml). The model
endpoint, key and model name can be overridden from the environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from mdagent.config.config_files import (
    DEFAULT_DEV_CONFIG_PATH,
    DEFAULT_USER_CONFIG_PATH,
    deep_merge_dict,
    read_yaml_file,
    resolve_config_paths,
)
from mdagent.llm_native.backend import BackendConfig
from mdagent.utils.logger import logger

# ==================== LLM ====================


class LLMConfig(BaseModel):
    """Model endpoint settings."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    api: str = Field(
        default="http://localhost:11434/v1",
        description="OpenAI-compatible API base URL",
    )

    key: str = Field(
        default="",
        description="API key (local servers usually accept any value)",
    )

    model: str = Field(
        default="gpt-oss:20b",
        description="Default model name; an agent's System section may override it",
    )

    timeout_s: float = Field(
        default=600.0,
        gt=0,
        description="HTTP timeout for one model call, in seconds",
    )

    max_retries: int = Field(
        default=2,
        ge=0,
        description="HTTP-level retries performed by the OpenAI client",
    )

    def to_backend_config(self, model: Optional[str] = None) -> BackendConfig:
        return BackendConfig(
            base_url=self.api,
            api_key=self.key,
            model=model or self.model,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
        )


# ==================== Agent ====================


class AgentConfig(BaseModel):
    """Run settings for markdown agents."""

    model_config = ConfigDict(extra="ignore")

    max_rounds: int = Field(
        default=30,
        ge=1,
        description="Round budget per phase",
    )

    tool_max_retries: int = Field(
        default=2,
        ge=0,
        description="Extra attempts for a failing tool call (tools may override)",
    )

    debug_output: bool = Field(
        default=True,
        description="Write JSON transcript snapshots while running",
    )

    debug_dir: str = Field(
        default="debug-output",
        description="Snapshot directory, relative to the agent file's directory",
    )

    output_dir: str = Field(
        default="output",
        description="Final output directory, relative to the agent file's directory",
    )


class Settings(BaseModel):
    """Top-level settings (YAML based)."""

    llm: LLMConfig = Field(default_factory=LLMConfig, description="Model endpoint")
    agent: AgentConfig = Field(default_factory=AgentConfig, description="Agent runs")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_dir: str = Field(
        default="",
        description="Log file directory; empty means console only",
    )
    log_rotation: str = Field(
        default="50 MB",
        description="Rotation condition in loguru syntax, e.g. '50 MB' or '1 week'",
    )
    log_retention: str = Field(
        default="14 days",
        description="Retention in loguru syntax, e.g. '14 days'",
    )
    log_json: bool = Field(
        default=False,
        description="Also write JSON-lines logs",
    )

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> "Settings":
        """Build settings from a merged config mapping."""
        llm_config = config_data.get("LLM", config_data.get("llm")) or {}
        agent_config = config_data.get("Agent", config_data.get("agent")) or {}
        log_fields = {
            key: config_data[key]
            for key in ("log_level", "log_dir", "log_rotation", "log_retention", "log_json")
            if config_data.get(key) is not None
        }
        return cls(
            llm=LLMConfig(**llm_config),
            agent=AgentConfig(**agent_config),
            **log_fields,
        )

    def with_env_overrides(self, environ: Optional[Dict[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        updates: Dict[str, Any] = {}
        api = env.get("MDAGENT_API_BASE") or env.get("OPENAI_BASE_URL")
        if api:
            updates["api"] = api
        key = env.get("MDAGENT_API_KEY") or env.get("OPENAI_API_KEY")
        if key:
            updates["key"] = key
        model = env.get("MDAGENT_MODEL")
        if model:
            updates["model"] = model
        if not updates:
            return self
        return self.model_copy(update={"llm": self.llm.model_copy(update=updates)})


_settings_cache: Optional[Settings] = None
_settings_cache_key: Optional[tuple] = None


def load_settings(
    user_config_path: str | Path = DEFAULT_USER_CONFIG_PATH,
    dev_config_path: str | Path | None = DEFAULT_DEV_CONFIG_PATH,
    use_cache: bool = True,
    *,
    base_dir: str | Path | None = None,
    apply_logging: bool = True,
) -> Settings:
    """
    Load settings, cached by file path and mtime.

    Args:
        user_config_path: user config file (default mdagent.yaml)
        dev_config_path: optional developer override (default mdagent.dev.yaml)
        use_cache: reuse the last result when the files are unchanged
        base_dir: directory for relative paths (default: current directory)
        apply_logging: push the logging fields into loguru

    Returns:
        Settings
    """
    global _settings_cache, _settings_cache_key

    user_path, dev_path = resolve_config_paths(
        user_config_path=user_config_path,
        dev_config_path=dev_config_path,
        base_dir=base_dir,
    )

    def _mtime_ns(path: Path | None) -> int | None:
        if path is None:
            return None
        try:
            return path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    cache_key = (
        str(user_path),
        str(dev_path) if dev_path is not None else "",
        _mtime_ns(user_path),
        _mtime_ns(dev_path),
    )

    if use_cache and _settings_cache is not None and _settings_cache_key == cache_key:
        logger.debug(f"settings cache hit: user={user_path} dev={dev_path}")
        return _settings_cache

    try:
        user_data: Dict[str, Any] = {}
        if user_path.exists():
            user_data = read_yaml_file(user_path)
        else:
            logger.debug(f"config file not found: {user_path}; using defaults")

        dev_data: Dict[str, Any] = {}
        if dev_path is not None:
            try:
                dev_data = read_yaml_file(dev_path)
            except Exception as exc:
                logger.warning(f"ignoring unreadable developer config {dev_path}: {exc}")

        settings_instance = Settings.from_dict(deep_merge_dict(user_data, dev_data))
    except Exception as exc:
        logger.warning(f"failed to load settings, using defaults: {exc}")
        settings_instance = Settings()

    settings_instance = settings_instance.with_env_overrides()

    if apply_logging:
        from mdagent.utils.logger import apply_settings as apply_logging_settings

        apply_logging_settings(settings_instance)

    if use_cache:
        _settings_cache = settings_instance
        _settings_cache_key = cache_key

    return settings_instance
