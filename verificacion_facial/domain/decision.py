# verificacion_facial/domain/decision.py
from __future__ import annotations

from typing import Mapping

from .ensemble import EnsembleOutcome
from .errors import LowQualityInput
from .value_objects import (
    AlgorithmKind, AlgorithmResult, Confidence, EnsembleStats, MetricsBundle,
    VerificationConfig, VerificationResult,
)
from .vector_math import ensure_finite


class DecisionEngine:
    """
    passed = weighted >= umbral_adaptativo
             AND selfie_quality >= quality_floor
             AND document_quality >= quality_floor
             AND votes >= min_votes

    Las compuertas de calidad y votos no dependen del score: un algoritmo muy
    alto no compensa imágenes inservibles ni falta de corroboración.
    """

    def __init__(self, config: VerificationConfig):
        self.config = config

    def quality_ok(self, selfie_quality: float, document_quality: float) -> bool:
        floor = self.config.quality_floor
        return selfie_quality >= floor and document_quality >= floor

    def confidence(self, passed: bool, score: float, threshold: float, votes: int) -> Confidence:
        """
        high   : aprobado, margen cómodo y los 4 algoritmos votan
        medium : aprobado con margen estrecho, o con 3 votos
        low    : el resto (incluye aprobar 2/4 con margen amplio: falta corroboración)
        """
        if not passed:
            return Confidence.LOW
        comfortable = (score - threshold) >= self.config.comfortable_margin
        if comfortable and votes == len(AlgorithmKind):
            return Confidence.HIGH
        if not comfortable or votes == 3:
            return Confidence.MEDIUM
        return Confidence.LOW

    def decide(
        self,
        outcome: EnsembleOutcome,
        threshold: float,
        selfie_quality: float,
        document_quality: float,
        algorithms: Mapping[AlgorithmKind, AlgorithmResult],
        metrics: MetricsBundle,
    ) -> VerificationResult:
        ensure_finite(
            weighted_score=outcome.weighted_score, adaptive_threshold=threshold,
            selfie_quality=selfie_quality, document_quality=document_quality,
        )
        quality_ok = self.quality_ok(selfie_quality, document_quality)
        if not quality_ok and self.config.abort_on_low_quality:
            raise LowQualityInput(
                "Calidad de imagen bajo el mínimo",
                {
                    "selfie_quality": round(selfie_quality, 2),
                    "document_quality": round(document_quality, 2),
                    "quality_floor": self.config.quality_floor,
                },
            )

        passed = (
            outcome.weighted_score >= threshold
            and quality_ok
            and outcome.votes >= self.config.min_votes
        )

        return VerificationResult(
            passed=passed,
            score=outcome.weighted_score,
            confidence=self.confidence(passed, outcome.weighted_score, threshold, outcome.votes),
            required_score=threshold,
            metrics=metrics,
            algorithms=algorithms,
            ensemble_stats=EnsembleStats(
                weighted_score=outcome.weighted_score,
                votes=outcome.votes,
                variance=outcome.variance,
                adaptive_threshold=threshold,
                agreement_count=outcome.agreement_count,
            ),
            selfie_quality=selfie_quality,
            document_quality=document_quality,
        )
