"""
End-to-end tests for FaceVerificationEngine: synthetic embeddings in, VerificationResult out.
"""

import dataclasses
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from verificacion_facial.domain import engine as engine_module
from verificacion_facial.domain.algorithms import ArcFaceScorer, default_scorers
from verificacion_facial.domain.engine import FaceVerificationEngine
from verificacion_facial.domain.errors import FeatureInvalid, LowQualityInput, VerificationError
from verificacion_facial.domain.value_objects import (
    RAW_METRIC_BY_KIND, AlgorithmKind, AlgorithmResult, Confidence, MetricsBundle, SampleRole,
    VerificationConfig,
)


class FixedMetrics:
    def __init__(self, value):
        self.value = value

    def compute(self, a, b):
        return MetricsBundle(*(self.value,) * 6)


@pytest.fixture
def engine():
    return FaceVerificationEngine()


def test_identical_high_quality_pair_passes_with_high_confidence(engine, pair_with_cosine):
    result = engine.verify(*pair_with_cosine(1.0, 90, 90))

    assert result.passed is True
    assert result.score >= 85.0
    assert result.votes == 4
    assert result.confidence == Confidence.HIGH
    assert result.required_score == pytest.approx(50.0)


def test_different_people_are_rejected(engine, pair_with_cosine):
    for cosine in (0.0, 0.1, -0.4):
        result = engine.verify(*pair_with_cosine(cosine, 90, 90))
        assert result.passed is False
        assert result.score <= 30.0
        assert result.votes == 0
        assert result.confidence == Confidence.LOW


def test_unusable_document_fails_despite_identical_embeddings(engine, pair_with_cosine):
    result = engine.verify(*pair_with_cosine(1.0, 90, 25))

    assert result.passed is False
    assert result.score >= 85.0
    assert result.document_quality == 25.0
    assert result.required_score == pytest.approx(55.625)


def test_split_vote_with_disagreement_raises_threshold(engine, pair_with_cosine):
    result = engine.verify(*pair_with_cosine(0.57, 90, 90))
    algorithms = result.algorithms

    assert algorithms[AlgorithmKind.ARCFACE].matched is True
    assert algorithms[AlgorithmKind.SPHEREFACE].matched is True
    assert algorithms[AlgorithmKind.TRIPLET].matched is False
    assert algorithms[AlgorithmKind.COSFACE].matched is False
    assert result.votes == 2
    assert result.ensemble_stats.variance > 100.0
    assert result.required_score > 55.0
    assert result.passed == (result.score >= result.required_score)
    assert result.passed is False


@pytest.mark.parametrize("cosine", [-0.5, 0.0, 0.3, 0.57, 0.65, 0.8, 0.95, 1.0])
def test_result_invariants(engine, pair_with_cosine, cosine):
    result = engine.verify(*pair_with_cosine(cosine, 75, 65))
    stats = result.ensemble_stats

    assert 0.0 <= result.score <= 100.0
    assert 40.0 <= result.required_score <= 80.0
    assert result.score == stats.weighted_score
    assert result.required_score == stats.adaptive_threshold
    assert result.votes == sum(1 for r in result.algorithms.values() if r.matched)
    assert set(result.algorithms) == set(AlgorithmKind)
    if result.passed:
        assert result.score >= result.required_score
        assert result.votes >= 2


def test_same_inputs_same_result(engine, pair_with_cosine):
    selfie, document = pair_with_cosine(0.71, 82, 64)
    first = engine.verify(selfie, document)
    second = engine.verify(selfie, document)
    assert first == second
    assert first.to_dict() == second.to_dict()


def test_swapping_roles_keeps_score(engine, pair_with_cosine):
    selfie, document = pair_with_cosine(0.68, 80, 80)
    forward = engine.verify(selfie, document)
    backward = engine.verify(document, selfie)
    assert forward.score == pytest.approx(backward.score, abs=1e-9)
    assert forward.passed == backward.passed


def test_parallel_evaluation_matches_serial(pair_with_cosine):
    selfie, document = pair_with_cosine(0.62, 77, 71)
    serial = FaceVerificationEngine().verify(selfie, document)
    with ThreadPoolExecutor(max_workers=5) as pool:
        parallel = FaceVerificationEngine(executor=pool).verify(selfie, document)
    assert parallel == serial
    assert list(parallel.algorithms) == list(AlgorithmKind)


def test_parallel_failure_propagates_typed_error(make_sample):
    selfie = make_sample(np.ones(128))
    document = make_sample(np.ones(256), role=SampleRole.DOCUMENT)
    with ThreadPoolExecutor(max_workers=4) as pool:
        with pytest.raises(FeatureInvalid):
            FaceVerificationEngine(executor=pool).verify(selfie, document)


def test_dimension_mismatch_is_feature_invalid(engine, make_sample):
    with pytest.raises(VerificationError) as exc:
        engine.verify(make_sample(np.ones(128)), make_sample(np.ones(512), role=SampleRole.DOCUMENT))
    assert exc.value.kind == "feature_invalid"
    assert exc.value.retryable is False


@pytest.mark.parametrize("quality", [-1.0, 100.5, float("nan")])
def test_quality_out_of_range_is_feature_invalid(engine, pair_with_cosine, quality):
    with pytest.raises(FeatureInvalid):
        engine.verify(*pair_with_cosine(0.9, quality, 80))


def test_abort_on_low_quality_raises(pair_with_cosine):
    engine = FaceVerificationEngine(VerificationConfig(abort_on_low_quality=True))
    with pytest.raises(LowQualityInput):
        engine.verify(*pair_with_cosine(1.0, 20, 90))


def test_metrics_do_not_influence_decision(pair_with_cosine):
    selfie, document = pair_with_cosine(0.66, 70, 70)
    low = FaceVerificationEngine(metrics=FixedMetrics(0.0)).verify(selfie, document)
    high = FaceVerificationEngine(metrics=FixedMetrics(100.0)).verify(selfie, document)

    assert low.metrics != high.metrics
    assert (low.passed, low.score, low.confidence, low.required_score) == \
        (high.passed, high.score, high.confidence, high.required_score)


def test_engine_requires_one_scorer_per_algorithm():
    with pytest.raises(ValueError):
        FaceVerificationEngine(scorers=[ArcFaceScorer()])
    with pytest.raises(ValueError):
        FaceVerificationEngine(scorers=list(default_scorers()) + [ArcFaceScorer()])


def test_result_is_immutable(engine, pair_with_cosine):
    result = engine.verify(*pair_with_cosine(0.9))
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.passed = False
    with pytest.raises(TypeError):
        result.algorithms[AlgorithmKind.ARCFACE] = None


def test_inputs_are_not_modified(engine, pair_with_cosine):
    selfie, document = pair_with_cosine(0.8)
    before = (selfie.embedding, document.embedding, selfie.landmarks)
    engine.verify(selfie, document)
    assert (selfie.embedding, document.embedding, selfie.landmarks) == before


def test_module_level_verify(pair_with_cosine):
    result = engine_module.verify(*pair_with_cosine(1.0, 95, 95))
    assert result.passed is True
    payload = result.to_dict()
    assert set(payload) == {
        "passed", "score", "confidence", "requiredScore", "metrics", "algorithms",
        "ensembleStats", "selfieQuality", "documentQuality",
    }
    assert payload["algorithms"]["arcface"]["angleDegrees"] == pytest.approx(0.0, abs=1e-3)
    assert payload["algorithms"]["triplet"]["euclideanDistance"] == pytest.approx(0.0, abs=1e-3)
    assert payload["algorithms"]["cosface"]["cosineValue"] == pytest.approx(1.0, abs=1e-3)


class FixedScorer:
    def __init__(self, kind, score, matched=True):
        self.kind = kind
        self.value = score
        self.matched = matched

    def score(self, a, b):
        return AlgorithmResult(
            kind=self.kind, score=self.value, matched=self.matched,
            confidence=Confidence.MEDIUM, raw_metric=RAW_METRIC_BY_KIND[self.kind](0.0),
        )


def _fixed_engine(score):
    return FaceVerificationEngine(scorers=[FixedScorer(k, score) for k in AlgorithmKind])


def test_weighted_score_equal_to_adaptive_threshold_passes(pair_with_cosine):
    # calidad 90/90 + 4 votos + varianza 0 -> umbral 55 - 5 = 50
    result = _fixed_engine(50.0).verify(*pair_with_cosine(0.5, 90, 90))

    assert result.required_score == 50.0
    assert result.score == result.required_score
    assert result.ensemble_stats.variance == 0.0
    assert result.passed is True


def test_weighted_score_just_below_adaptive_threshold_fails(pair_with_cosine):
    result = _fixed_engine(49.99).verify(*pair_with_cosine(0.5, 90, 90))
    assert result.required_score == 50.0
    assert result.passed is False


def test_landmark_mismatch_does_not_block_decision(engine, pair_with_cosine, make_sample):
    selfie, document = pair_with_cosine(1.0, 90, 90)
    trimmed = make_sample(document.embedding, quality=90.0, role=SampleRole.DOCUMENT,
                          landmarks=document.landmarks[:4])

    result = engine.verify(selfie, trimmed)

    assert result.passed is True
    assert result.metrics.landmarks == 0.0
    full = engine.verify(selfie, document)
    assert (result.passed, result.score, result.confidence, result.required_score) == \
        (full.passed, full.score, full.confidence, full.required_score)


def test_no_matches_reports_zero_agreement(engine, pair_with_cosine):
    result = engine.verify(*pair_with_cosine(0.0, 90, 90))
    assert result.votes == 0
    assert result.ensemble_stats.agreement_count == 0
