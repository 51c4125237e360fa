# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-04
# Description: OpenAIChat
# -----------------------------------------------------------------------------
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from openai import AsyncOpenAI

from utility.logging_utils import get_class_logger

Message = Dict[str, str]  # {"role": "system"|"user"|"assistant", "content": "..."}

JSON_OBJECT_FORMAT: Dict[str, Any] = {"type": "json_object"}


@runtime_checkable
class TextGenerator(Protocol):
    async def simple_chat(
            self,
            user_text: str,
            system_text: Optional[str] = None,
            **kwargs: Any,
    ) -> dict:
        ...


@dataclass
class OpenAIChat:
    """
        Async OpenAI chat wrapper used as the text-generation service.

        Expected Config fields:
          cfg.openai_api_key: str
          cfg.openai_base_url: str | None (optional)
          cfg.openai_chat_model: str  (e.g. "gpt-4o-mini", "gpt-4o", etc.)
    """

    cfg: Any
    timeout: float = 15.0
    logger: Any = None

    def __post_init__(self) -> None:
        self.logger = self.logger or get_class_logger(self.__class__)

        if not getattr(self.cfg, "openai_api_key", None):
            raise ValueError("Config is missing openai_api_key for OpenAI mode")

        self.model = getattr(self.cfg, "openai_chat_model", None)
        if not self.model:
            raise ValueError("Config missing openai_chat_model for OpenAI mode.")

        self.client = AsyncOpenAI(
            api_key=self.cfg.openai_api_key,
            base_url=getattr(self.cfg, "openai_base_url", None) or None,
            timeout=self.timeout,
            max_retries=1,
        )

        self.logger.info("OpenAIChat initialised (model=%s, timeout=%.1fs)", self.model, self.timeout)

    async def chat(
            self,
            messages: List[Message],
            temperature: float = 0.0,
            max_tokens: int = 512,
            top_p: float = 1.0,
            seed: Optional[int] = None,
            response_format: Optional[Dict[str, Any]] = None,
            extra_params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not messages:
            raise ValueError("messages must be non-empty.")

        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
        }
        if seed is not None:
            params["seed"] = seed
        if response_format is not None:
            params["response_format"] = response_format
        if extra_params:
            params.update(extra_params)

        self.logger.debug(
            "Chat request: model=%s temp=%s max_tokens=%s",
            self.model, temperature, max_tokens
        )

        resp = await self.client.chat.completions.create(**params)

        self.logger.debug("Raw ChatCompletion response: %r", resp)
        return resp

    async def simple_chat(
            self,
            user_text: str,
            system_text: Optional[str] = None,
            **kwargs: Any,
    ) -> dict:
        messages: List[Message] = []
        if system_text:
            messages.append({"role": "system", "content": system_text})
        messages.append({"role": "user", "content": user_text})

        resp = await self.chat(messages, **kwargs)

        try:
            content = resp.choices[0].message.content or ""
        except (AttributeError, IndexError) as e:
            self.logger.error("Unexpected chat response format: %s", e, exc_info=True)
            raise RuntimeError(f"Unexpected chat response format: {e}") from e

        self.logger.debug("Token usage: %r", getattr(resp, "usage", None))

        return {
            "answer": content,
            "usage": getattr(resp, "usage", None),
            "model": getattr(resp, "model", None),
        }

    async def healthcheck(self) -> bool:
        try:
            _ = await self.simple_chat("ping", max_tokens=5, temperature=0.0)
            return True
        except Exception as e:
            self.logger.warning("Chat healthcheck failed: %s", e)
            return False
