# verificacion_facial/domain/value_objects.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import numpy as np


class AlgorithmKind(str, Enum):
    ARCFACE = "arcface"
    TRIPLET = "triplet"
    COSFACE = "cosface"
    SPHEREFACE = "sphereface"


class Confidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SampleRole(str, Enum):
    SELFIE = "selfie"
    DOCUMENT = "document"


def clamp_pct(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


# ---- FaceSample (lo entrega el extractor externo) ----

@dataclass(frozen=True)
class FaceSample:
    """
    Rasgos ya extraídos de un rostro.
      - embedding: vector de longitud fija
      - landmarks: [(x, y), ...]
      - quality_score: 0..100 (QualityAssessor)
      - face_crop: recorte alineado en gris (opcional, solo métricas explicativas)
    """
    embedding: Tuple[float, ...]
    landmarks: Tuple[Tuple[float, float], ...]
    quality_score: float
    role: SampleRole
    face_crop: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "embedding", tuple(float(v) for v in self.embedding))
        object.__setattr__(self, "landmarks", tuple((float(x), float(y)) for x, y in self.landmarks))
        object.__setattr__(self, "role", SampleRole(self.role))
        if self.face_crop is not None:
            crop = np.array(self.face_crop, copy=True)
            crop.setflags(write=False)
            object.__setattr__(self, "face_crop", crop)

    def vector(self) -> np.ndarray:
        return np.asarray(self.embedding, dtype=np.float64)

    def points(self) -> np.ndarray:
        return np.asarray(self.landmarks, dtype=np.float64).reshape(-1, 2)


# ---- Métrica cruda por algoritmo (unión etiquetada) ----

@dataclass(frozen=True)
class AngleDegrees:
    value: float
    name = "angleDegrees"


@dataclass(frozen=True)
class EuclideanDistance:
    value: float
    name = "euclideanDistance"


@dataclass(frozen=True)
class CosineValue:
    value: float
    name = "cosineValue"


RawMetric = Union[AngleDegrees, EuclideanDistance, CosineValue]

RAW_METRIC_BY_KIND = {
    AlgorithmKind.ARCFACE: AngleDegrees,
    AlgorithmKind.TRIPLET: EuclideanDistance,
    AlgorithmKind.COSFACE: CosineValue,
    AlgorithmKind.SPHEREFACE: AngleDegrees,
}


@dataclass(frozen=True)
class AlgorithmResult:
    kind: AlgorithmKind
    score: float            # 0..100
    matched: bool
    confidence: Confidence
    raw_metric: RawMetric

    def __post_init__(self):
        expected = RAW_METRIC_BY_KIND[self.kind]
        if not isinstance(self.raw_metric, expected):
            raise TypeError(
                f"{self.kind.value} requiere {expected.__name__}, recibió {type(self.raw_metric).__name__}"
            )
        object.__setattr__(self, "score", clamp_pct(self.score))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": round(self.score, 2),
            "matched": self.matched,
            "confidence": self.confidence.value,
            self.raw_metric.name: round(self.raw_metric.value, 4),
        }


METRIC_KEYS = ("euclidean", "cosine", "landmarks", "structural", "texture", "histogram")


@dataclass(frozen=True)
class MetricsBundle:
    """Métricas solo explicativas (0..100). No intervienen en la decisión."""
    euclidean: float
    cosine: float
    landmarks: float
    structural: float
    texture: float
    histogram: float

    def __post_init__(self):
        for key in METRIC_KEYS:
            object.__setattr__(self, key, clamp_pct(getattr(self, key)))

    def as_mapping(self) -> Mapping[str, float]:
        return MappingProxyType({k: getattr(self, k) for k in METRIC_KEYS})

    def to_dict(self) -> Dict[str, float]:
        return {k: round(getattr(self, k), 2) for k in METRIC_KEYS}


@dataclass(frozen=True)
class EnsembleStats:
    weighted_score: float
    votes: int
    variance: float
    adaptive_threshold: float
    agreement_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weightedScore": round(self.weighted_score, 2),
            "votes": self.votes,
            "variance": round(self.variance, 4),
            "adaptiveThreshold": round(self.adaptive_threshold, 2),
            "agreementCount": self.agreement_count,
        }


@dataclass(frozen=True)
class VerificationResult:
    passed: bool
    score: float
    confidence: Confidence
    required_score: float
    metrics: MetricsBundle
    algorithms: Mapping[AlgorithmKind, AlgorithmResult]
    ensemble_stats: EnsembleStats
    selfie_quality: float
    document_quality: float

    def __post_init__(self):
        object.__setattr__(self, "algorithms", MappingProxyType(dict(self.algorithms)))

    @property
    def votes(self) -> int:
        return self.ensemble_stats.votes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "score": round(self.score, 2),
            "confidence": self.confidence.value,
            "requiredScore": round(self.required_score, 2),
            "metrics": self.metrics.to_dict(),
            "algorithms": {k.value: r.to_dict() for k, r in self.algorithms.items()},
            "ensembleStats": self.ensemble_stats.to_dict(),
            "selfieQuality": round(self.selfie_quality, 2),
            "documentQuality": round(self.document_quality, 2),
        }


# ---- Configuración inmutable del motor ----

DEFAULT_WEIGHTS = {
    AlgorithmKind.ARCFACE: 0.40,
    AlgorithmKind.TRIPLET: 0.20,
    AlgorithmKind.COSFACE: 0.25,
    AlgorithmKind.SPHEREFACE: 0.15,
}


@dataclass(frozen=True)
class VerificationConfig:
    weights: Mapping[AlgorithmKind, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    base_threshold: float = 55.0
    threshold_bounds: Tuple[float, float] = (40.0, 80.0)
    quality_floor: float = 30.0
    min_votes: int = 2
    variance_sensitivity: float = 0.5
    variance_tolerance: float = 10.0      # desviación estándar tolerada (puntos)
    quality_sensitivity: float = 0.25
    low_quality_mark: float = 60.0
    high_quality_mark: float = 80.0
    consensus_bonus: float = 5.0
    comfortable_margin: float = 15.0
    abort_on_low_quality: bool = False

    def __post_init__(self):
        weights = {AlgorithmKind(k): float(v) for k, v in dict(self.weights).items()}
        if set(weights) != set(AlgorithmKind):
            raise ValueError(f"weights debe cubrir {[k.value for k in AlgorithmKind]}")
        if any(w < 0 or not math.isfinite(w) for w in weights.values()):
            raise ValueError("weights deben ser finitos y >= 0")
        if not math.isclose(math.fsum(weights.values()), 1.0, abs_tol=1e-6):
            raise ValueError(f"weights deben sumar 1.0 (suman {math.fsum(weights.values()):.6f})")
        object.__setattr__(self, "weights", MappingProxyType(weights))

        lo, hi = (float(v) for v in self.threshold_bounds)
        if lo > hi:
            raise ValueError("threshold_bounds inválido (min > max)")
        object.__setattr__(self, "threshold_bounds", (lo, hi))
        if self.min_votes < 0 or self.min_votes > len(AlgorithmKind):
            raise ValueError("min_votes fuera de rango")
