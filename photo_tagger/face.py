"""Face comparison using insightface (ArcFace).

FaceEngine detects faces and computes ArcFace embeddings with buffalo_l
(RetinaFace + ArcFace) via ONNX Runtime on CPU. InsightFaceComparer turns
those embeddings into the percentage similarity the identity decision
expects: the best cosine between the reference's largest face and any
face in the candidate, scaled to [0, 100].
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from errors import ProviderError
from identity import FaceComparer
from images import load_rgb, resized_temp_image
from providers import ProviderConfig

logger = logging.getLogger(__name__)


@dataclass
class FaceRecord:
    bbox: tuple[float, float, float, float]  # normalized (x1, y1, x2, y2), 0-1

    @property
    def area(self) -> float:
        x1, y1, x2, y2 = self.bbox
        return max(0.0, x2 - x1) * max(0.0, y2 - y1)


class FaceEngine:
    """Detect faces and compute ArcFace embeddings using insightface."""

    def __init__(self, model_pack: str = "buffalo_l"):
        self._model_pack = model_pack
        self._app = None

    def load(self) -> None:
        import insightface

        self._app = insightface.app.FaceAnalysis(
            name=self._model_pack,
            allowed_modules=["detection", "recognition"],
            providers=["CPUExecutionProvider"],
        )
        self._app.prepare(ctx_id=-1, det_size=(640, 640))
        logger.info("FaceEngine loaded (%s, CPU)", self._model_pack)

    @property
    def loaded(self) -> bool:
        return self._app is not None

    def detect_and_embed(self, image_path: str) -> list[tuple[FaceRecord, np.ndarray]]:
        """Detect all faces in an image and return (FaceRecord, embedding) pairs.

        Returns:
            List of (FaceRecord, 512-dim float32 normalized embedding) tuples.
        """
        img = self._load_bgr(image_path)
        if img is None:
            raise ProviderError("Cannot load image for face detection", image_path)

        faces = self._app.get(img)
        h, w = img.shape[:2]
        results = []
        for face in faces:
            x1, y1, x2, y2 = face.bbox
            normalized_bbox = (
                round(float(max(0.0, x1 / w)), 6),
                round(float(max(0.0, y1 / h)), 6),
                round(float(min(1.0, x2 / w)), 6),
                round(float(min(1.0, y2 / h)), 6),
            )
            record = FaceRecord(bbox=normalized_bbox)
            embedding = face.normed_embedding.astype(np.float32)
            results.append((record, embedding))

        return results

    @staticmethod
    def _load_bgr(path: str) -> np.ndarray | None:
        """Load an image as BGR numpy array (insightface convention)."""
        try:
            import cv2

            img = cv2.imread(path)
            if img is not None:
                return img
        except ImportError:
            logger.debug("cv2 unavailable, falling back to Pillow")

        # Fallback for formats cv2 can't read (HEIF, WebP)
        try:
            arr = np.array(load_rgb(Path(path)))
            return arr[:, :, ::-1].copy()  # RGB -> BGR
        except OSError:
            logger.debug("Failed to load image: %s", path)
            return None


class InsightFaceComparer(FaceComparer):
    def __init__(self, config: ProviderConfig, engine: FaceEngine | None = None):
        self.config = config
        self._engine = engine or FaceEngine(config.model)
        self._reference_cache: dict[str, np.ndarray] = {}

    def _embed(self, image: Path) -> list[tuple[FaceRecord, np.ndarray]]:
        try:
            if not self._engine.loaded:
                self._engine.load()
            with resized_temp_image(image) as tmp:
                return self._engine.detect_and_embed(str(tmp))
        except ProviderError:
            raise
        except OSError as exc:
            raise ProviderError("Cannot prepare image", str(image), exc) from exc
        except Exception as exc:
            # cv2.error, onnxruntime and insightface failures for one image
            raise ProviderError("Face analysis failed", str(image), exc) from exc

    def reference_embedding(self, reference: Path) -> np.ndarray:
        key = str(Path(reference).resolve())
        if key not in self._reference_cache:
            faces = self._embed(reference)
            if not faces:
                raise ProviderError("No face found in reference image", str(reference))
            _, embedding = max(faces, key=lambda pair: pair[0].area)
            self._reference_cache[key] = embedding
        return self._reference_cache[key]

    def prepare(self, reference: Path) -> None:
        self.reference_embedding(reference)

    def compare(self, reference: Path, candidate: Path) -> float | None:
        ref = self.reference_embedding(reference)
        faces = self._embed(candidate)
        if not faces:
            return None
        sims = np.vstack([emb for _, emb in faces]) @ ref
        return float(max(0.0, sims.max()) * 100.0)


def make_face_comparer(config: ProviderConfig) -> FaceComparer:
    if config.provider == "insightface":
        return InsightFaceComparer(config)
    raise ValueError(f"Unknown face provider: {config.provider}")
