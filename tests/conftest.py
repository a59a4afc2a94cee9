import math
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")

import numpy as np
import pytest

from verificacion_facial.domain.value_objects import (
    AlgorithmKind, AlgorithmResult, Confidence, FaceSample, MetricsBundle,
    RAW_METRIC_BY_KIND, SampleRole,
)

DIM = 128

# 5 puntos (ojo izq, ojo der, nariz, boca izq, boca der) en un recorte de 112x112
LANDMARKS_5 = ((38.3, 51.7), (73.5, 51.5), (56.0, 71.7), (41.5, 92.4), (70.7, 92.2))


def _basis(dim: int = DIM):
    """Dos vectores unitarios ortogonales, fijos (semilla constante)."""
    rng = np.random.default_rng(20240611)
    a = rng.normal(size=dim)
    a /= np.linalg.norm(a)
    e = rng.normal(size=dim)
    e -= np.dot(e, a) * a
    e /= np.linalg.norm(e)
    return a, e


@pytest.fixture
def basis():
    return _basis()


@pytest.fixture
def make_sample():
    def _make(embedding, quality=90.0, role=SampleRole.SELFIE, landmarks=LANDMARKS_5, face_crop=None):
        return FaceSample(
            embedding=list(np.asarray(embedding, dtype=float)),
            landmarks=landmarks,
            quality_score=quality,
            role=role,
            face_crop=face_crop,
        )
    return _make


@pytest.fixture
def pair_with_cosine(make_sample):
    """(selfie, document) cuyos embeddings tienen exactamente el coseno pedido."""
    def _pair(cosine, selfie_quality=90.0, document_quality=90.0, dim=DIM):
        a, e = _basis(dim)
        b = cosine * a + math.sqrt(max(0.0, 1.0 - cosine * cosine)) * e
        return (
            make_sample(a, quality=selfie_quality, role=SampleRole.SELFIE),
            make_sample(b, quality=document_quality, role=SampleRole.DOCUMENT),
        )
    return _pair


@pytest.fixture
def make_algorithm_result():
    def _make(kind, score, matched=None, confidence=Confidence.MEDIUM):
        return AlgorithmResult(
            kind=kind,
            score=score,
            matched=(score >= 60.0) if matched is None else matched,
            confidence=confidence,
            raw_metric=RAW_METRIC_BY_KIND[kind](0.0),
        )
    return _make


@pytest.fixture
def make_results(make_algorithm_result):
    def _make(arcface, triplet, cosface, sphereface):
        scores = {
            AlgorithmKind.ARCFACE: arcface,
            AlgorithmKind.TRIPLET: triplet,
            AlgorithmKind.COSFACE: cosface,
            AlgorithmKind.SPHEREFACE: sphereface,
        }
        return {k: make_algorithm_result(k, s) for k, s in scores.items()}
    return _make


@pytest.fixture
def flat_metrics():
    return MetricsBundle(euclidean=50, cosine=50, landmarks=50, structural=50, texture=50, histogram=50)
