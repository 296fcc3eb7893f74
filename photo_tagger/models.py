"""Local text embeddings via open_clip, for offline description search."""

import logging

import numpy as np
import torch

from config import OPEN_CLIP_MODELS
from errors import ProviderError
from providers import EmbeddingProvider, ProviderConfig

logger = logging.getLogger(__name__)


def get_device() -> torch.device:
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


class OpenClipEmbedder(EmbeddingProvider):
    """CLIP/SigLIP text tower via open_clip. Weights load on first embed."""

    def __init__(self, config: ProviderConfig):
        if config.model not in OPEN_CLIP_MODELS:
            raise ValueError(
                f"Unknown open-clip model {config.model!r}; "
                f"choose from {', '.join(sorted(OPEN_CLIP_MODELS))}"
            )
        self.config = config
        self._model_name, self._pretrained, self.embedding_dim = OPEN_CLIP_MODELS[config.model]
        self._model = None
        self._tokenizer = None
        self._device = None

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def load(self, device: torch.device | None = None) -> None:
        import open_clip

        self._device = device or get_device()
        logger.info("Loading %s (%s) on %s", self.config.model, self._model_name, self._device)
        self._model, _, _ = open_clip.create_model_and_transforms(
            self._model_name, pretrained=self._pretrained or None
        )
        self._tokenizer = open_clip.get_tokenizer(self._model_name)
        self._model = self._model.to(self._device)
        self._model.eval()
        logger.info("Loaded %s", self.config.model)

    def encode_text(self, text: str) -> np.ndarray:
        """Encode text to a normalized vector. Returns (D,) float32."""
        tokens = self._tokenizer([text]).to(self._device)
        with torch.no_grad():
            features = self._model.encode_text(tokens)
            features /= features.norm(dim=-1, keepdim=True)
        return features[0].cpu().numpy().astype(np.float32)

    def embed(self, text: str) -> list[float]:
        try:
            if not self.loaded:
                self.load()
            return [float(x) for x in self.encode_text(text)]
        except (RuntimeError, OSError, ValueError) as exc:
            raise ProviderError(f"{self.config.model_id} embedding failed", cause=exc) from exc
