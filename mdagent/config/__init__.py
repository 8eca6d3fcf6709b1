"""
Settings loaded from mdagent.yaml (plus an optional mdagent.dev.yaml) and the environment.
"""

from .settings import AgentConfig, LLMConfig, Settings, load_settings

__all__ = ["Settings", "LLMConfig", "AgentConfig", "load_settings"]
