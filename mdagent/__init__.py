"""
mdagent: multi-phase chat agents defined in markdown.

The runtime lives in :mod:`mdagent.llm_native`; markdown definitions, tool loading and the
built-in tools live in :mod:`mdagent.agent`.
"""

from .version import __version__

__all__ = ["__version__"]
