"""
Ollama model parameters.

Ollama's OpenAI-compatible endpoint has no request field for options such as ``num_ctx`` or
``top_k``. They are applied by deriving a model from the base model with those parameters baked
in (``POST /api/create``) and sending requests to the derived model instead. Derived names are
stable: ``<base>-custom-<hash of the parameters>``, so each combination is created once per
server.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any, Dict, Mapping, Optional

import aiohttp

from mdagent.utils.logger import get_logger

logger = get_logger(__name__)

OLLAMA_MODEL_PARAMS: tuple[str, ...] = (
    "num_ctx",
    "num_predict",
    "top_k",
    "repeat_penalty",
    "repeat_last_n",
    "tfs_z",
    "mirostat",
    "mirostat_tau",
    "mirostat_eta",
    "num_thread",
    "num_gpu",
    "num_gqa",
    "num_batch",
    "num_keep",
)


def extract_model_params(options: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: options[key] for key in OLLAMA_MODEL_PARAMS if options.get(key) is not None}


def is_ollama_endpoint(base_url: str) -> bool:
    """Any explicit base URL other than OpenAI itself is treated as an Ollama-style server."""
    url = str(base_url or "").lower()
    if not url:
        return False
    if "localhost:11434" in url or "127.0.0.1:11434" in url:
        return True
    return "openai.com" not in url


def ollama_host(base_url: str) -> str:
    host = str(base_url or "").strip().rstrip("/")
    if host.endswith("/v1"):
        host = host[: -len("/v1")]
    return host


def custom_model_name(base_model: str, params: Mapping[str, Any]) -> str:
    if not params:
        return base_model
    payload = json.dumps(dict(params), sort_keys=True, separators=(",", ":"))
    digest = hashlib.md5(payload.encode("utf-8")).hexdigest()[:8]
    return f"{base_model}-custom-{digest}"


class OllamaModelManager:
    """Creates (once) and remembers derived models on one Ollama server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 600.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.host = ollama_host(base_url)
        self.timeout_s = timeout_s
        self._session = session
        self._resolved: Dict[str, str] = {}

    async def _post(self, session: aiohttp.ClientSession, path: str, body: Dict[str, Any]) -> int:
        async with session.post(f"{self.host}{path}", json=body) as response:
            if response.status >= 400:
                detail = await response.text()
                logger.debug("ollama %s returned %s: %s", path, response.status, detail[:200])
            return response.status

    async def _ensure(
        self,
        session: aiohttp.ClientSession,
        base_model: str,
        target: str,
        params: Dict[str, Any],
    ) -> str:
        if await self._post(session, "/api/show", {"model": target}) == 200:
            logger.info("using existing model %s", target)
            return target

        logger.info("creating model %s from %s with %s", target, base_model, params)
        status = await self._post(
            session,
            "/api/create",
            {"model": target, "from": base_model, "parameters": params, "stream": False},
        )
        if status != 200:
            raise RuntimeError(f"HTTP {status} from /api/create")
        return target

    async def ensure_model(self, base_model: str, params: Mapping[str, Any]) -> str:
        """
        Return the model to request: ``base_model`` itself when there are no parameters, the
        derived model otherwise. Falls back to ``base_model`` (with a warning) when the derived
        model cannot be created.
        """
        params = dict(params)
        if not params:
            return base_model

        target = custom_model_name(base_model, params)
        if target in self._resolved:
            return self._resolved[target]

        own_session = self._session is None
        session = self._session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_s)
        )
        try:
            model = await self._ensure(session, base_model, target, params)
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError) as exc:
            logger.warning(
                "failed to create model %s (%s); falling back to %s", target, exc, base_model
            )
            model = base_model
        finally:
            if own_session:
                await session.close()

        self._resolved[target] = model
        return model


__all__ = [
    "OLLAMA_MODEL_PARAMS",
    "OllamaModelManager",
    "custom_model_name",
    "extract_model_params",
    "is_ollama_endpoint",
    "ollama_host",
]
