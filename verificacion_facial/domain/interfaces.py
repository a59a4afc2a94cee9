# verificacion_facial/domain/interfaces.py
from __future__ import annotations
from typing import Protocol, List, Optional, Dict, Any
import numpy as np

from .value_objects import AlgorithmKind, AlgorithmResult, FaceSample, VerificationResult

# ---- ML / visión (puertos) ----

class FaceDetector(Protocol):
    def detect(self, img_bgr: np.ndarray) -> Optional[dict]:
        """
        Debe devolver:
        {
          "bbox": (x1, y1, x2, y2),
          "landmarks": List[Tuple[float, float]],  # opcional
          "pose": {"Yaw": float, "Pitch": float, "Roll": float}  # opcional
        }
        o None si no hay rostro.
        """
        ...

class AlgorithmScorer(Protocol):
    kind: AlgorithmKind

    def score(self, a: FaceSample, b: FaceSample) -> AlgorithmResult:
        """Determinista y sin efectos laterales."""
        ...

# ---- Persistencia de resultados (colaborador externo del motor) ----

class VerificationResultRepository(Protocol):
    def save(self, uuid_proceso: str, result: VerificationResult, extra: Optional[Dict[str, Any]] = None) -> str:
        """Guarda y devuelve el uuid de la verificación."""
        ...
    def get(self, uuid_verificacion: str) -> Optional[Dict[str, Any]]:
        ...
    def list_recent(self, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        ...
    def stats(self) -> Dict[str, Any]:
        ...
