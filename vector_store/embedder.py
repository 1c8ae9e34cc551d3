"""
Embedders - text to fixed-length vectors

The knowledge core treats embedding as a pluggable capability: anything with
an `embed(text) -> list[float]` method works. Two implementations ship here:

- OllamaEmbedder: wraps the Ollama Python client (single-input embed calls,
  bounded timeout, health check)
- HashEmbedder: deterministic, dependency-free vectors seeded by the text
  hash; used offline and in tests

Usage:
    from vector_store.embedder import OllamaEmbedder

    embedder = OllamaEmbedder(model="bge-m3")
    vector = embedder.embed("Banner fix for the landing page")
"""

import hashlib
import logging
import math
import random
from typing import Optional, Protocol, runtime_checkable

import ollama

from .exceptions import EmbeddingError

logger = logging.getLogger(__name__)


@runtime_checkable
class Embedder(Protocol):
    def embed(self, text: str) -> list[float]:
        ...


class OllamaEmbedder:
    """
    Generates text embeddings using a local Ollama model.

    One request per text: embedding APIs in this deployment are single-input,
    and callers (ingestion, retrieval) embed documents one at a time.
    """

    def __init__(
        self,
        model: str = "bge-m3",
        base_url: str = "http://localhost:11434",
        timeout: float = 30.0,
    ):
        """
        Initialize the embedder.

        Args:
            model: Ollama model name for embeddings.
            base_url: Ollama API base URL.
            timeout: Per-request timeout in seconds.
        """
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self._client = ollama.Client(host=base_url, timeout=timeout)
        self._dimensions: Optional[int] = None

    @property
    def dimensions(self) -> Optional[int]:
        """Return the embedding dimensions (available after first embed call)."""
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Raises:
            ValueError: If the text is empty.
            EmbeddingError: If Ollama is unreachable or returns no vector.
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        try:
            response = self._client.embed(model=self.model, input=text)
            embeddings = response["embeddings"]
        except ollama.ResponseError as e:
            raise EmbeddingError(
                f"Ollama embedding failed for model '{self.model}'",
                model=self.model,
                original_error=e,
            ) from e
        except Exception as e:
            if "Connection" in type(e).__name__ or "refused" in str(e).lower():
                raise EmbeddingError(
                    f"Cannot connect to Ollama at {self.base_url}",
                    model=self.model,
                    original_error=e,
                ) from e
            raise EmbeddingError(
                "Embedding generation failed",
                model=self.model,
                original_error=e,
            ) from e

        if not embeddings:
            raise EmbeddingError(
                f"Ollama returned no embedding for model '{self.model}'",
                model=self.model,
            )

        embedding = [float(v) for v in embeddings[0]]
        self._dimensions = len(embedding)
        return embedding

    def health_check(self) -> dict[str, bool | str]:
        """
        Check if Ollama is running and the embedding model is available.

        Returns:
            Dict with 'healthy' (bool), 'ollama_running' (bool),
            'model_available' (bool), and 'error' (str, if any).
        """
        result = {
            "healthy": False,
            "ollama_running": False,
            "model_available": False,
            "model": self.model,
            "error": "",
        }

        try:
            models = self._client.list()
            result["ollama_running"] = True

            model_names = [m.model for m in models.models]
            # "bge-m3" matches "bge-m3:latest"
            result["model_available"] = any(
                m.startswith(self.model) for m in model_names
            )

            if not result["model_available"]:
                result["error"] = (
                    f"Model '{self.model}' not found. "
                    f"Available: {model_names}. "
                    f"Pull it with: ollama pull {self.model}"
                )
            else:
                result["healthy"] = True

        except Exception as e:
            result["error"] = f"Cannot connect to Ollama: {e}"

        return result


class HashEmbedder:
    """
    Deterministic pseudo-embeddings derived from a SHA-256 of the text.

    Identical text always yields the identical unit vector. There is no
    semantic similarity between different texts.
    """

    def __init__(self, dimensions: int = 384):
        if dimensions < 1:
            raise ValueError("dimensions must be positive")
        self._dimensions = dimensions
        self.model = f"hash-{dimensions}"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = random.Random(seed)
        vector = [rng.uniform(-1.0, 1.0) for _ in range(self._dimensions)]

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    def health_check(self) -> dict[str, bool | str]:
        return {"healthy": True, "model": self.model, "error": ""}
