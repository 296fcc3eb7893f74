"""Hosted collaborators: description, label generation and text embeddings.

Each collaborator is constructed from an explicit ProviderConfig and talks
to its service over httpx. Two wire dialects are supported: any
OpenAI-compatible endpoint (``/chat/completions``, ``/embeddings``) and
Ollama (``/api/generate``, ``/api/embeddings``). The local open_clip
embedder lives in models.py.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import httpx

import config as cfg
from errors import ProviderError
from images import image_base64, image_data_url, resized_temp_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    provider: str
    model: str
    base_url: str = ""
    api_key: str = ""
    timeout: float = cfg.PROVIDER_TIMEOUT

    @property
    def model_id(self) -> str:
        return f"{self.provider}:{self.model}"


def default_config(kind: str, provider: str | None = None, model: str | None = None) -> ProviderConfig:
    """Build the ProviderConfig for ``kind`` from config.py defaults.

    Args:
        kind: One of "describe", "classify", "embedding", "face".
        provider: Override of the configured provider name.
        model: Override of the configured model identifier.
    """
    defaults = {
        "describe": (cfg.DESCRIBE_PROVIDER, cfg.DESCRIBE_MODEL),
        "classify": (cfg.CLASSIFY_PROVIDER, cfg.CLASSIFY_MODEL),
        "embedding": (cfg.EMBEDDING_PROVIDER, cfg.EMBEDDING_MODEL),
        "face": (cfg.FACE_PROVIDER, cfg.FACE_MODEL),
    }
    if kind not in defaults:
        raise ValueError(f"Unknown provider kind: {kind}")
    default_provider, default_model = defaults[kind]
    provider = provider or default_provider
    base_url = {"openai": cfg.OPENAI_BASE_URL, "ollama": cfg.OLLAMA_BASE_URL}.get(provider, "")
    api_key = cfg.OPENAI_API_KEY if provider == "openai" else ""
    return ProviderConfig(
        provider=provider,
        model=model or default_model,
        base_url=base_url,
        api_key=api_key,
        timeout=cfg.PROVIDER_TIMEOUT,
    )


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class EmbeddingProvider(ABC):
    """Maps text to a fixed-length vector."""

    config: ProviderConfig

    @property
    def model_id(self) -> str:
        return self.config.model_id

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Embed one text. Raises ProviderError on any backend failure."""


class DescriptionGenerator(ABC):
    """Maps an image (plus optional context and prompt) to free text."""

    @abstractmethod
    def describe(self, image_path: Path, context: str = "", prompt: str = "") -> str:
        """Describe the image. Raises ProviderError on any backend failure."""


class LabelGenerator(ABC):
    """Answers a text-only prompt. Backs the constrained classifier."""

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Return the raw answer. Raises ProviderError on any backend failure."""


def build_describe_prompt(context: str = "", prompt: str = "") -> str:
    """Custom prompt or the default template, with optional people context."""
    base = prompt or cfg.DESCRIBE_PROMPT
    if not context:
        return base
    return cfg.DESCRIBE_CONTEXT_TEMPLATE.format(prompt=base, context=context)


# ---------------------------------------------------------------------------
# HTTP plumbing
# ---------------------------------------------------------------------------


class _HttpCollaborator:
    def __init__(self, config: ProviderConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        headers = {}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._http = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )

    def _post(self, path: str, payload: dict) -> dict:
        try:
            resp = self._http.post(path, json=payload)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"{self.config.model_id} request to {path} failed", cause=exc
            ) from exc
        except ValueError as exc:
            raise ProviderError(
                f"{self.config.model_id} returned invalid JSON", cause=exc
            ) from exc

    def _extract(self, body: dict, getter):
        try:
            return getter(body)
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(
                f"{self.config.model_id} returned an unexpected response", cause=exc
            ) from exc

    def close(self) -> None:
        self._http.close()


def _prepared_image(image_path: Path, encode):
    """Resize into a scoped temp file and encode it for the wire."""
    try:
        with resized_temp_image(image_path) as tmp:
            return encode(tmp)
    except OSError as exc:
        raise ProviderError("Cannot prepare image", str(image_path), exc) from exc


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------


class OpenAIChat(_HttpCollaborator, DescriptionGenerator, LabelGenerator):
    def _chat(self, content) -> str:
        body = self._post(
            "/chat/completions",
            {
                "model": self.config.model,
                "messages": [{"role": "user", "content": content}],
            },
        )
        text = self._extract(body, lambda b: b["choices"][0]["message"]["content"])
        return (text or "").strip()

    def describe(self, image_path: Path, context: str = "", prompt: str = "") -> str:
        url = _prepared_image(image_path, image_data_url)
        return self._chat(
            [
                {"type": "text", "text": build_describe_prompt(context, prompt)},
                {"type": "image_url", "image_url": {"url": url}},
            ]
        )

    def complete(self, prompt: str) -> str:
        return self._chat(prompt)


class OpenAIEmbedder(_HttpCollaborator, EmbeddingProvider):
    def embed(self, text: str) -> list[float]:
        body = self._post("/embeddings", {"model": self.config.model, "input": text})
        return self._extract(body, lambda b: [float(x) for x in b["data"][0]["embedding"]])


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------


class OllamaChat(_HttpCollaborator, DescriptionGenerator, LabelGenerator):
    def _generate(self, prompt: str, images: list[str] | None = None) -> str:
        payload = {"model": self.config.model, "prompt": prompt, "stream": False}
        if images:
            payload["images"] = images
        body = self._post("/api/generate", payload)
        return (self._extract(body, lambda b: b["response"]) or "").strip()

    def describe(self, image_path: Path, context: str = "", prompt: str = "") -> str:
        encoded = _prepared_image(image_path, image_base64)
        return self._generate(build_describe_prompt(context, prompt), [encoded])

    def complete(self, prompt: str) -> str:
        return self._generate(prompt)


class OllamaEmbedder(_HttpCollaborator, EmbeddingProvider):
    def embed(self, text: str) -> list[float]:
        body = self._post("/api/embeddings", {"model": self.config.model, "prompt": text})
        return self._extract(body, lambda b: [float(x) for x in b["embedding"]])


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

_CHAT_PROVIDERS = {"openai": OpenAIChat, "ollama": OllamaChat}


def make_describer(config: ProviderConfig) -> DescriptionGenerator:
    if config.provider not in _CHAT_PROVIDERS:
        raise ValueError(f"Unknown description provider: {config.provider}")
    return _CHAT_PROVIDERS[config.provider](config)


def make_label_generator(config: ProviderConfig) -> LabelGenerator:
    if config.provider not in _CHAT_PROVIDERS:
        raise ValueError(f"Unknown classification provider: {config.provider}")
    return _CHAT_PROVIDERS[config.provider](config)


def make_embedder(config: ProviderConfig) -> EmbeddingProvider:
    if config.provider == "openai":
        return OpenAIEmbedder(config)
    if config.provider == "ollama":
        return OllamaEmbedder(config)
    if config.provider == "open-clip":
        from models import OpenClipEmbedder

        return OpenClipEmbedder(config)
    raise ValueError(f"Unknown embedding provider: {config.provider}")
