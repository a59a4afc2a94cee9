from __future__ import annotations

import math

from .value_objects import AlgorithmKind, VerificationConfig
from .vector_math import ensure_finite


class AdaptiveThresholdPolicy:
    """
    Score mínimo para aprobar ESTA solicitud.

    Parte de base_threshold (55) y:
      + sube si la calidad media de las imágenes es baja
      + sube si la desviación entre algoritmos supera la tolerancia
      - baja un poco si la calidad es alta Y votan los 4 algoritmos
    Resultado acotado a threshold_bounds (40..80).
    """

    def __init__(self, config: VerificationConfig):
        self.config = config

    def threshold(self, selfie_quality: float, document_quality: float, votes: int, variance: float) -> float:
        ensure_finite(selfie_quality=selfie_quality, document_quality=document_quality, variance=variance)
        c = self.config
        mean_quality = (selfie_quality + document_quality) / 2.0

        value = c.base_threshold
        if mean_quality < c.low_quality_mark:
            value += c.quality_sensitivity * (c.low_quality_mark - mean_quality)

        spread = math.sqrt(max(0.0, variance))
        if spread > c.variance_tolerance:
            value += c.variance_sensitivity * (spread - c.variance_tolerance)

        if mean_quality >= c.high_quality_mark and votes == len(AlgorithmKind):
            value -= c.consensus_bonus

        lo, hi = c.threshold_bounds
        return min(hi, max(lo, value))
