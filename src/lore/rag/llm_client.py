"""LiteLLM client wrapper with retry, backoff, and API key validation.

All generation and embedding calls route through this module. LiteLLM's
built-in retry is used (num_retries=3). API key presence is validated at
startup before the orchestrator or server begins work.
"""

from __future__ import annotations

import os
from enum import Enum

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "vertex_ai": None,  # Application default credentials
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


class EmbeddingRole(str, Enum):
    """Which side of an asymmetric retrieval embedding a text is on."""

    DOCUMENT = "document"
    QUERY = "query"


# provider → (parameter name, {role: value})
_ROLE_PARAMS: dict[str, tuple[str, dict[EmbeddingRole, str]]] = {
    "gemini": (
        "task_type",
        {EmbeddingRole.DOCUMENT: "RETRIEVAL_DOCUMENT", EmbeddingRole.QUERY: "RETRIEVAL_QUERY"},
    ),
    "vertex_ai": (
        "task_type",
        {EmbeddingRole.DOCUMENT: "RETRIEVAL_DOCUMENT", EmbeddingRole.QUERY: "RETRIEVAL_QUERY"},
    ),
    "cohere": (
        "input_type",
        {EmbeddingRole.DOCUMENT: "search_document", EmbeddingRole.QUERY: "search_query"},
    ),
    "voyage": (
        "input_type",
        {EmbeddingRole.DOCUMENT: "document", EmbeddingRole.QUERY: "query"},
    ),
}


def _provider(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = _provider(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def role_params(model: str, role: EmbeddingRole) -> dict[str, str]:
    """Provider-specific keyword arguments that select the embedding *role*.

    Providers without asymmetric embeddings get no extra arguments.
    """
    spec = _ROLE_PARAMS.get(_provider(model))
    if spec is None:
        return {}
    param, values = spec
    return {param: values[EmbeddingRole(role)]}


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> str:
    """Call litellm.completion() with retry/backoff. Returns content string.

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""


def embed_batch(
    model: str,
    texts: list[str],
    role: EmbeddingRole = EmbeddingRole.DOCUMENT,
    num_retries: int = 3,
) -> list[list[float]]:
    """Embed *texts* in one provider call. Vectors come back in input order.

    Raises:
        ValueError: If the provider returns a different number of vectors.
    """
    if not texts:
        return []
    response = litellm.embedding(
        model=model,
        input=texts,
        num_retries=num_retries,
        **role_params(model, role),
    )
    data = sorted(response.data, key=lambda d: d["index"]) if _has_index(response.data) else response.data
    vectors = [d["embedding"] for d in data]
    if len(vectors) != len(texts):
        raise ValueError(f"Embedding provider returned {len(vectors)} vectors for {len(texts)} inputs")
    return vectors


def embed(
    model: str,
    text: str,
    role: EmbeddingRole = EmbeddingRole.QUERY,
    num_retries: int = 3,
) -> list[float]:
    """Embed a single text. Defaults to the query role."""
    return embed_batch(model, [text], role=role, num_retries=num_retries)[0]


def _has_index(data: list) -> bool:
    return all(isinstance(d, dict) and "index" in d for d in data)
