"""
Embedding Service

Turns query text into vectors for similarity search.

Modes:
- openai: OpenAI embeddings API (default, matches vectors stored by the app)
- femb: on-device fastembed model, no external calls
"""

import asyncio
import logging
from typing import List, Optional

import numpy as np

logger = logging.getLogger("discovery.common.embedding_service")


class EmbeddingService:
    """Async embedding generation over a configurable backend."""

    def __init__(
        self,
        mode: str = "openai",
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
    ) -> None:
        self._mode = mode
        self._model_name = model
        self._backend = None

        if mode == "femb":
            try:
                from fastembed import TextEmbedding

                self._backend = TextEmbedding(model_name=model)
                logger.info("Initialized fastembed model %s", model)
            except ImportError:
                logger.warning("fastembed package not installed")
            except Exception as e:
                logger.warning("Failed to initialize fastembed model %s: %s", model, e)
            return

        if mode == "openai":
            if not api_key:
                logger.info("OpenAI API key not provided, embedding service unavailable")
                return
            try:
                from openai import AsyncOpenAI

                self._backend = AsyncOpenAI(api_key=api_key)
            except ImportError:
                logger.warning("openai package not installed")
            return

        logger.warning("Unsupported embedding mode: %s", mode)

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._backend is not None

    @property
    def mode(self) -> str:
        return self._mode

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of strings to embed

        Returns:
            List of embedding vectors, one per input text
        """
        if not self._backend:
            raise RuntimeError("Embedding service is not available")

        if not texts:
            return []

        if self._mode == "femb":
            # fastembed is CPU bound; keep it off the event loop
            vectors = await asyncio.to_thread(lambda: list(self._backend.embed(texts)))
            return [np.asarray(v, dtype=np.float32).tolist() for v in vectors]

        response = await self._backend.embeddings.create(
            model=self._model_name,
            input=texts,
        )
        return [item.embedding for item in response.data]

    async def embed_single(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: String to embed

        Returns:
            Embedding vector
        """
        if not text:
            raise ValueError("Cannot embed empty text")

        embeddings = await self.embed([text])
        return embeddings[0]


# Module-level singleton getter
_service_instance: Optional[EmbeddingService] = None


def get_embedding_service(
    mode: str = "openai",
    model: str = "text-embedding-3-small",
    api_key: Optional[str] = None,
) -> EmbeddingService:
    """
    Get the shared EmbeddingService instance.

    Args:
        mode: Embedding mode (openai, femb)
        model: Model name
        api_key: OpenAI API key, used in openai mode

    Returns:
        EmbeddingService instance
    """
    global _service_instance

    if _service_instance is None:
        _service_instance = EmbeddingService(mode=mode, model=model, api_key=api_key)

    return _service_instance
