# verificacion_facial/domain/engine.py
from __future__ import annotations

import math
from concurrent.futures import Executor
from typing import Dict, Optional, Sequence

from .algorithms import default_scorers
from .decision import DecisionEngine
from .ensemble import EnsembleCombiner
from .errors import FeatureInvalid
from .interfaces import AlgorithmScorer
from .metrics import MetricsAggregator
from .threshold_policy import AdaptiveThresholdPolicy
from .value_objects import (
    AlgorithmKind, AlgorithmResult, FaceSample, VerificationConfig, VerificationResult,
)
from .vector_math import check_embedding


def _check_quality(sample: FaceSample) -> float:
    q = float(sample.quality_score)
    if not math.isfinite(q) or q < 0.0 or q > 100.0:
        raise FeatureInvalid("quality_score fuera de [0, 100]", {"role": sample.role.value, "quality_score": str(q)})
    return q


class FaceVerificationEngine:
    """
    Motor puro y sin estado: dos FaceSample -> VerificationResult.

    Los cuatro algoritmos y el MetricsAggregator son independientes; si se
    inyecta un Executor se evalúan en paralelo. Cualquier fallo se propaga
    como VerificationError y nunca se expone un resultado parcial.
    """

    def __init__(
        self,
        config: Optional[VerificationConfig] = None,
        scorers: Optional[Sequence[AlgorithmScorer]] = None,
        metrics: Optional[MetricsAggregator] = None,
        executor: Optional[Executor] = None,
    ):
        self.config = config or VerificationConfig()
        self.scorers = tuple(scorers or default_scorers())
        kinds = [s.kind for s in self.scorers]
        if sorted(k.value for k in kinds) != sorted(k.value for k in AlgorithmKind):
            raise ValueError(f"se requiere exactamente un scorer por algoritmo, recibidos: {[k.value for k in kinds]}")
        self.metrics = metrics or MetricsAggregator()
        self.executor = executor
        self.combiner = EnsembleCombiner(self.config.weights)
        self.policy = AdaptiveThresholdPolicy(self.config)
        self.decision = DecisionEngine(self.config)

    def verify(self, selfie: FaceSample, document: FaceSample) -> VerificationResult:
        check_embedding(selfie)
        check_embedding(document)
        selfie_q = _check_quality(selfie)
        document_q = _check_quality(document)

        algorithms, metrics = self._evaluate(selfie, document)

        outcome = self.combiner.combine(algorithms)
        threshold = self.policy.threshold(selfie_q, document_q, outcome.votes, outcome.variance)
        return self.decision.decide(outcome, threshold, selfie_q, document_q, algorithms, metrics)

    def _evaluate(self, selfie: FaceSample, document: FaceSample):
        by_kind = {s.kind: s for s in self.scorers}
        if self.executor is None:
            algorithms = {k: by_kind[k].score(selfie, document) for k in AlgorithmKind}
            return algorithms, self.metrics.compute(selfie, document)

        futures = {k: self.executor.submit(by_kind[k].score, selfie, document) for k in AlgorithmKind}
        metrics_future = self.executor.submit(self.metrics.compute, selfie, document)
        algorithms: Dict[AlgorithmKind, AlgorithmResult] = {}
        try:
            for kind in AlgorithmKind:
                algorithms[kind] = futures[kind].result()
            metrics = metrics_future.result()
        except BaseException:
            for f in list(futures.values()) + [metrics_future]:
                f.cancel()
            raise
        return algorithms, metrics


def verify(
    selfie_sample: FaceSample,
    document_sample: FaceSample,
    config: Optional[VerificationConfig] = None,
) -> VerificationResult:
    """Punto de entrada puro: lanza VerificationError si no se pudo evaluar."""
    return FaceVerificationEngine(config).verify(selfie_sample, document_sample)
