# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-04
# Description: RecordEmbedder
# -----------------------------------------------------------------------------
import asyncio
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
from openai import AsyncAzureOpenAI, AsyncOpenAI

from config.Config import Config
from utility.logging_utils import get_class_logger


@runtime_checkable
class TextEmbedder(Protocol):
    async def embed_text(self, text: str) -> np.ndarray:
        ...

    async def embed_texts(self, texts: Sequence[str]) -> List[np.ndarray]:
        ...


def average_vectors(vectors: Sequence[np.ndarray], normalize: bool = True) -> np.ndarray:
    """
    Component-wise centroid of several query vectors.
    Good enough for a handful of short, related phrases.
    """
    if not vectors:
        raise ValueError("vectors must be non-empty")
    arr = np.vstack([np.asarray(v, dtype=np.float32) for v in vectors])
    centroid = arr.mean(axis=0)
    if normalize:
        centroid = centroid / (np.linalg.norm(centroid) + 1e-12)
    return centroid.astype(np.float32)


class RecordEmbedder:
    def __init__(
            self,
            cfg: Config,
            *,
            batch_size: int = 64,
            normalize: bool = True,
            timeout: float = 15.0,
            max_retries: int = 3,
            logger=None,
    ):
        self.cfg = cfg
        self.batch_size = batch_size
        self.normalize = normalize
        self.timeout = timeout
        self.max_retries = max_retries
        self.logger = logger or get_class_logger(self.__class__)

        self.model = cfg.openai_azure_embed_deployment or "text-embedding-3-large"
        self._init_client()
        self.logger.info("Azure OpenAI embedder initialized (model=%s, timeout=%.1fs)", self.model, self.timeout)

    def _init_client(self) -> None:
        """
        Tries classic AsyncAzureOpenAI(...) first; if the installed SDK signature
        is incompatible, falls back to AsyncOpenAI(base_url=.../deployments/<model>).
        Sets self._use_deployment_param accordingly.
        """
        endpoint = self.cfg.openai_azure_endpoint.rstrip("/")
        key = self.cfg.openai_azure_api_key
        api_version = getattr(self.cfg, "openai_api_version", "2024-10-21")

        # Classic style
        try:
            self.client = AsyncAzureOpenAI(
                api_key=key,
                azure_endpoint=endpoint,
                api_version=api_version,
                timeout=self.timeout,
                max_retries=0,
            )
            self._use_deployment_param = True
            return
        except TypeError as e:
            # Newer SDKs may alter signature. Fall through.
            self.logger.debug(f"AsyncAzureOpenAI init fell through to base_url mode: {e}")

        # Fallback: deployment encoded in base_url; do not pass model= on each call
        self.client = AsyncOpenAI(
            api_key=key,
            base_url=f"{endpoint}/openai/deployments/{self.model}",
            timeout=self.timeout,
            max_retries=0,
        )
        self._use_deployment_param = False

    async def _embed_batch(self, texts: List[str]) -> np.ndarray:
        delay = 0.8
        for attempt in range(1, self.max_retries + 1):
            try:
                if self._use_deployment_param:
                    resp = await self.client.embeddings.create(model=self.model, input=texts)
                else:
                    resp = await self.client.embeddings.create(input=texts)

                arr = np.asarray([d.embedding for d in resp.data], dtype=np.float32)

                # Normalize vectors (cosine-friendly)
                if self.normalize:
                    norms = np.linalg.norm(arr, axis=1, keepdims=True) + 1e-12
                    arr = arr / norms
                return arr

            except Exception as e:
                self.logger.warning(f"Embedding batch failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt == self.max_retries:
                    raise
                await asyncio.sleep(delay)
                delay *= 1.7  # backoff

        # Unreachable and include for type checkers
        return np.empty((0, 0), dtype=np.float32)

    async def embed_text(self, text: str) -> np.ndarray:
        if not text or not text.strip():
            raise ValueError("text must be non-empty")
        arr = await self._embed_batch([text])
        return arr[0]

    async def embed_texts(self, texts: Sequence[str]) -> List[np.ndarray]:
        """
        Embed texts in batches of `batch_size`, preserving order.
        A failing batch raises; callers decide how to degrade.
        """
        items = [t for t in texts]
        if any(not t or not t.strip() for t in items):
            raise ValueError("texts must all be non-empty")

        total = len(items)
        self.logger.debug(f"Embedding {total} texts (batch={self.batch_size})")
        out: List[np.ndarray] = []
        for i in range(0, total, self.batch_size):
            arr = await self._embed_batch(items[i:i + self.batch_size])
            out.extend(list(arr))
        return out

    async def healthcheck(self) -> bool:
        try:
            vec = await self.embed_text("healthcheck")
            return vec.size > 0
        except Exception as e:
            self.logger.warning("Embedding healthcheck failed: %s", e)
            return False
