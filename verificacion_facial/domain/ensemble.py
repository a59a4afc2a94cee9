# verificacion_facial/domain/ensemble.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

from .errors import InternalComputationError
from .value_objects import AlgorithmKind, AlgorithmResult, clamp_pct
from .vector_math import ensure_finite


@dataclass(frozen=True)
class EnsembleOutcome:
    weighted_score: float
    votes: int
    variance: float

    @property
    def agreement_count(self) -> int:
        # algoritmos que coinciden en "misma persona"
        return self.votes


class EnsembleCombiner:
    """
    weighted = 0.40·arcface + 0.20·triplet + 0.25·cosface + 0.15·sphereface (por defecto)
    votes    = cantidad de algoritmos con matched
    variance = varianza poblacional de los 4 scores sin ponderar (señal de desacuerdo)

    Las sumas usan math.fsum (redondeo exacto): el orden de evaluación de los
    algoritmos no cambia el resultado.
    """

    def __init__(self, weights: Mapping[AlgorithmKind, float]):
        self.weights = dict(weights)

    def combine(self, results: Mapping[AlgorithmKind, AlgorithmResult]) -> EnsembleOutcome:
        missing = set(AlgorithmKind) - set(results)
        if missing:
            raise InternalComputationError(
                "faltan resultados de algoritmos", {"missing": sorted(k.value for k in missing)}
            )
        scores = [results[k].score for k in AlgorithmKind]
        ensure_finite(**{f"{k.value}_score": results[k].score for k in AlgorithmKind})

        weighted = math.fsum(self.weights[k] * results[k].score for k in AlgorithmKind)
        votes = sum(1 for k in AlgorithmKind if results[k].matched)

        mean = math.fsum(scores) / len(scores)
        variance = math.fsum((s - mean) ** 2 for s in scores) / len(scores)

        ensure_finite(weighted_score=weighted, variance=variance)
        return EnsembleOutcome(weighted_score=clamp_pct(weighted), votes=votes, variance=max(0.0, variance))
