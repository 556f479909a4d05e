# synapse/gemini.py
import asyncio
import httpx
from typing import Optional
from synapse.config import Settings
import logging

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The text-generation call failed, timed out or returned no text."""


class GeminiClient:
    """
    Text-generation collaborator backed by the Gemini generateContent REST API.
    Each call is stateless: one prompt in, the generated text out.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-pro",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, cfg: Settings, client: Optional[httpx.AsyncClient] = None) -> "GeminiClient":
        return cls(cfg.gemini_api_key, model=cfg.gemini_model, base_url=cfg.gemini_base, timeout=cfg.model_timeout, client=client)

    async def generate(self, prompt: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        try:
            resp = await self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except Exception as e:
            logger.exception("Request to %s failed", url)
            raise GenerationError(str(e)) from e

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise GenerationError(f"Invalid LLM response (blockReason={reason})")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text:
            raise GenerationError("Invalid LLM response")
        return text

    async def aclose(self):
        await self._client.aclose()


async def generate_with_timeout(generator, prompt: str, timeout: float) -> str:
    """
    Run generator.generate under a hard deadline. Timeouts and any collaborator
    error surface as GenerationError.
    """
    try:
        return await asyncio.wait_for(generator.generate(prompt), timeout=timeout)
    except GenerationError:
        raise
    except asyncio.TimeoutError as e:
        logger.warning("Text generation timed out after %.1fs", timeout)
        raise GenerationError(f"timed out after {timeout}s") from e
    except Exception as e:
        logger.exception("Text generation failed")
        raise GenerationError(str(e)) from e
