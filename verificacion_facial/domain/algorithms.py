# verificacion_facial/domain/algorithms.py
"""
Cuatro estimadores de similitud independientes sobre embeddings ya extraídos.

Cada uno devuelve un score 0..100, su voto (matched) y la métrica nativa:
  - ArcFace    (margen angular aditivo)     -> ángulo en grados
  - Triplet    (distancia euclídea, FaceNet) -> distancia
  - CosFace    (margen sobre el coseno)      -> coseno
  - SphereFace (margen angular multiplicativo) -> ángulo en grados

Todos son simétricos: score(a, b) == score(b, a).
"""
from __future__ import annotations

import math

from .value_objects import (
    AlgorithmKind, AlgorithmResult, Confidence, FaceSample,
    AngleDegrees, EuclideanDistance, CosineValue, clamp_pct,
)
from .vector_math import normalized_pair, cosine_of, ensure_finite, sigmoid

HALF_PI = math.pi / 2.0


def confidence_from_margin(score: float, boundary: float, high_band: float = 20.0, medium_band: float = 8.0) -> Confidence:
    margin = abs(score - boundary)
    if margin >= high_band:
        return Confidence.HIGH
    if margin >= medium_band:
        return Confidence.MEDIUM
    return Confidence.LOW


class _BaseScorer:
    kind: AlgorithmKind
    boundary: float = 60.0

    def _result(self, score: float, raw_metric) -> AlgorithmResult:
        ensure_finite(**{f"{self.kind.value}_score": score, f"{self.kind.value}_raw": raw_metric.value})
        score = clamp_pct(score)
        return AlgorithmResult(
            kind=self.kind,
            score=score,
            matched=score >= self.boundary,
            confidence=confidence_from_margin(score, self.boundary),
            raw_metric=raw_metric,
        )


class ArcFaceScorer(_BaseScorer):
    """
    Separación angular en la hiperesfera con margen aditivo m:
      logit = s * cos(θ + m);  sim = sigmoid(logit / 10)
    Re-escalado min-max sobre θ ∈ [0°, 90°] para que 0° -> 100 y 90° -> 0.
    """
    kind = AlgorithmKind.ARCFACE

    def __init__(self, scale: float = 64.0, margin: float = 0.5, boundary: float = 60.0):
        self.scale = scale
        self.margin = margin
        self.boundary = boundary
        self._top = self._curve(0.0)
        self._bottom = self._curve(HALF_PI)

    def _curve(self, theta: float) -> float:
        return sigmoid(self.scale * math.cos(theta + self.margin) / 10.0)

    def score(self, a: FaceSample, b: FaceSample) -> AlgorithmResult:
        na, nb = normalized_pair(a, b)
        theta = min(math.acos(cosine_of(na, nb)), HALF_PI)   # cosenos negativos -> 90°
        score = 100.0 * (self._curve(theta) - self._bottom) / (self._top - self._bottom)
        return self._result(score, AngleDegrees(math.degrees(theta)))


class SphereFaceScorer(_BaseScorer):
    """
    Softmax angular (A-Softmax) con margen multiplicativo m:
      logit = s * cos(m * θ)
    Misma familia que ArcFace pero con pendiente m·sin(mθ): más abrupta en la
    zona media, de modo que ambos algoritmos angulares no quedan correlacionados 1:1.
    """
    kind = AlgorithmKind.SPHEREFACE

    def __init__(self, scale: float = 64.0, margin: float = 1.35, boundary: float = 60.0):
        if margin * HALF_PI >= math.pi:
            raise ValueError("margin demasiado grande: cos(m·θ) deja de ser monótono en [0°, 90°]")
        self.scale = scale
        self.margin = margin
        self.boundary = boundary
        self._top = self._curve(0.0)
        self._bottom = self._curve(HALF_PI)

    def _curve(self, theta: float) -> float:
        return sigmoid(self.scale * math.cos(self.margin * theta) / 10.0)

    def score(self, a: FaceSample, b: FaceSample) -> AlgorithmResult:
        na, nb = normalized_pair(a, b)
        theta = min(math.acos(cosine_of(na, nb)), HALF_PI)
        score = 100.0 * (self._curve(theta) - self._bottom) / (self._top - self._bottom)
        return self._result(score, AngleDegrees(math.degrees(theta)))


class TripletScorer(_BaseScorer):
    """
    Distancia euclídea entre embeddings normalizados (FaceNet / triplet loss).
    Curva logística decreciente sobre el rango operativo [0, √2]
    (√2 = embeddings ortogonales); distancias mayores puntúan 0.
    """
    kind = AlgorithmKind.TRIPLET

    def __init__(self, midpoint: float = 0.95, width: float = 0.12, max_distance: float = math.sqrt(2.0), boundary: float = 60.0):
        self.midpoint = midpoint
        self.width = width
        self.max_distance = max_distance
        self.boundary = boundary
        self._top = self._curve(0.0)
        self._bottom = self._curve(max_distance)

    def _curve(self, distance: float) -> float:
        return sigmoid(-(distance - self.midpoint) / self.width)

    def score(self, a: FaceSample, b: FaceSample) -> AlgorithmResult:
        na, nb = normalized_pair(a, b)
        # |a-b|² = 2 - 2cos para vectores unitarios; evita diferencias de redondeo por el orden
        distance = math.sqrt(max(0.0, 2.0 - 2.0 * cosine_of(na, nb)))
        d = min(distance, self.max_distance)
        score = 100.0 * (self._curve(d) - self._bottom) / (self._top - self._bottom)
        return self._result(score, EuclideanDistance(distance))


class CosFaceScorer(_BaseScorer):
    """
    Coseno con margen aditivo m (CosFace / LMCL):
      score = 100 * clamp((cos - m) / (1 - m))
    """
    kind = AlgorithmKind.COSFACE

    def __init__(self, margin: float = 0.35, boundary: float = 60.0):
        if not 0.0 <= margin < 1.0:
            raise ValueError("margin debe estar en [0, 1)")
        self.margin = margin
        self.boundary = boundary

    def score(self, a: FaceSample, b: FaceSample) -> AlgorithmResult:
        na, nb = normalized_pair(a, b)
        cosine = cosine_of(na, nb)
        score = 100.0 * (cosine - self.margin) / (1.0 - self.margin)
        return self._result(score, CosineValue(cosine))


def default_scorers():
    return (ArcFaceScorer(), TripletScorer(), CosFaceScorer(), SphereFaceScorer())
