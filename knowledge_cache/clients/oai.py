"""Helpers for interacting with OpenAI API"""
from __future__ import annotations

from typing import Sequence

import numpy as np
from openai import AsyncOpenAI

from knowledge_cache.config import embeddings, vector_cache

import logging
logger = logging.getLogger(__name__)

# One shared async-capable client, created on first use
_aoai: AsyncOpenAI | None = None


def get_client() -> AsyncOpenAI:
    global _aoai
    if _aoai is None:
        if not embeddings.OPENAI_API_KEY:
            raise ValueError("Missing environment variables: OPENAI_API_KEY")
        _aoai = AsyncOpenAI(api_key=embeddings.OPENAI_API_KEY)
    return _aoai


def set_client(client: AsyncOpenAI | None) -> None:
    """Swap the shared client (tests, custom base URLs)."""
    global _aoai
    _aoai = client


# ==============================================
# Embedding utilities
# ==============================================
def _check_dim(vec: np.ndarray, model: str, dim: int) -> np.ndarray:
    if vec.size != dim:
        raise ValueError(f"Unexpected embedding size {vec.size} != {dim} for model {model}")
    return vec


async def embed_text(text: str, model: str | None = None, dim: int | None = None) -> np.ndarray:
    """
    Return a float32 numpy vector for the given text using OpenAI embeddings.
    Model defaults to embeddings.EMB_MODEL_ID.
    """
    use_model = model or embeddings.EMB_MODEL_ID
    use_dim = dim or vector_cache.EMB_DIM
    resp = await get_client().embeddings.create(model=use_model, input=text)
    vec = np.asarray(resp.data[0].embedding, dtype=np.float32)
    return _check_dim(vec, use_model, use_dim)


async def embed_texts(
    texts: Sequence[str], model: str | None = None, dim: int | None = None
) -> list[np.ndarray]:
    """Batch variant of :func:`embed_text`; output order matches ``texts``."""
    if not texts:
        return []

    use_model = model or embeddings.EMB_MODEL_ID
    use_dim = dim or vector_cache.EMB_DIM
    resp = await get_client().embeddings.create(model=use_model, input=list(texts))
    # The API tags each item with its input index.
    ordered = sorted(resp.data, key=lambda item: item.index)
    return [
        _check_dim(np.asarray(item.embedding, dtype=np.float32), use_model, use_dim)
        for item in ordered
    ]
