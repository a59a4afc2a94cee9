from __future__ import annotations

import logging
import math
from typing import Optional

import cv2
import numpy as np
from skimage.feature import local_binary_pattern
from skimage.metrics import structural_similarity as ssim

from .errors import FeatureInvalid
from .value_objects import FaceSample, MetricsBundle, clamp_pct
from .vector_math import normalized_pair, cosine_of, ensure_finite

logger = logging.getLogger("verificacion.verify")

CROP_SIZE = (112, 112)
HIST_BINS = 32
SSIM_WINDOW = 7
LBP_POINTS = 8
LBP_RADIUS = 1


class MetricsAggregator:
    """
    Seis métricas auxiliares para el operador (0..100). Solo explican el
    resultado: el DecisionEngine nunca las consulta.

    structural / texture / histogram usan los recortes alineados cuando ambas
    muestras los traen; si no, se calculan sobre el embedding como señal 1D.
    Landmarks no comparables (cantidad distinta, colapsados) puntúan 0 y no
    detienen la verificación.
    """

    def compute(self, a: FaceSample, b: FaceSample) -> MetricsBundle:
        na, nb = normalized_pair(a, b)
        cosine = cosine_of(na, nb)
        distance = math.sqrt(max(0.0, 2.0 - 2.0 * cosine))

        euclidean = 100.0 * (1.0 - distance / math.sqrt(2.0))
        cosine_pct = 100.0 * max(0.0, cosine)
        try:
            landmarks = landmark_similarity(a.points(), b.points())
        except FeatureInvalid as ex:
            logger.info({"event": "landmarks_not_comparable", "reason": ex.message, **ex.details})
            landmarks = 0.0

        crop_a, crop_b = _crop_pair(a, b)
        if crop_a is not None:
            structural = structural_similarity(crop_a, crop_b, data_range=255.0)
            texture = lbp_texture_similarity(crop_a, crop_b)
            histogram = histogram_correlation(crop_a, crop_b)
        else:
            structural = structural_similarity(na, nb)
            texture = signal_texture_similarity(na, nb)
            histogram = histogram_correlation(na, nb)

        ensure_finite(
            euclidean=euclidean, cosine=cosine_pct, landmarks=landmarks,
            structural=structural, texture=texture, histogram=histogram,
        )
        return MetricsBundle(
            euclidean=clamp_pct(euclidean),
            cosine=clamp_pct(cosine_pct),
            landmarks=clamp_pct(landmarks),
            structural=clamp_pct(structural),
            texture=clamp_pct(texture),
            histogram=clamp_pct(histogram),
        )


def _crop_pair(a: FaceSample, b: FaceSample):
    if a.face_crop is None or b.face_crop is None:
        return None, None
    if a.face_crop.size == 0 or b.face_crop.size == 0:
        return None, None
    out = []
    for crop in (a.face_crop, b.face_crop):
        img = np.asarray(crop)
        if img.ndim == 3:
            img = cv2.cvtColor(img.astype(np.uint8), cv2.COLOR_BGR2GRAY)
        out.append(cv2.resize(img.astype(np.float32), CROP_SIZE, interpolation=cv2.INTER_AREA))
    return out[0], out[1]


def landmark_similarity(pa: np.ndarray, pb: np.ndarray) -> float:
    """
    Correspondencia geométrica de landmarks: Procrustes ortogonal tras centrar
    y normalizar escala. disparity ∈ [0, 1]; 0 = misma geometría.
    """
    if len(pa) != len(pb):
        raise FeatureInvalid("cantidad de landmarks distinta", {"a": int(len(pa)), "b": int(len(pb))})
    if len(pa) < 3:
        raise FeatureInvalid("se requieren al menos 3 landmarks", {"count": int(len(pa))})
    if not (np.all(np.isfinite(pa)) and np.all(np.isfinite(pb))):
        raise FeatureInvalid("landmarks con valores no finitos")

    ca = pa - pa.mean(axis=0)
    cb = pb - pb.mean(axis=0)
    sa, sb = np.linalg.norm(ca), np.linalg.norm(cb)
    if sa < 1e-9 or sb < 1e-9:
        raise FeatureInvalid("landmarks degenerados (todos en el mismo punto)")
    ca, cb = ca / sa, cb / sb
    # suma de valores singulares de ca^T cb = máxima correlación tras rotar
    singular = np.linalg.svd(ca.T @ cb, compute_uv=False)
    disparity = max(0.0, 1.0 - float(np.sum(singular)) ** 2)
    return 100.0 * (1.0 - disparity)


def structural_similarity(x: np.ndarray, y: np.ndarray, data_range: Optional[float] = None) -> float:
    """SSIM por ventanas (scikit-image) en 0..100; sirve para recortes 2D y señales 1D."""
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if data_range is None:
        data_range = max(float(np.ptp(np.concatenate([x.ravel(), y.ravel()]))), 1e-6)
    win = min(SSIM_WINDOW, *x.shape)
    if win % 2 == 0:
        win -= 1
    if win < 3:
        return 100.0 if np.allclose(x, y) else 0.0
    value = ssim(x, y, data_range=data_range, win_size=win)
    return 100.0 * max(0.0, float(value))


def _lbp_histogram(gray: np.ndarray) -> np.ndarray:
    img = np.clip(np.rint(np.asarray(gray, dtype=np.float64)), 0, 255).astype(np.uint8)
    codes = local_binary_pattern(img, LBP_POINTS, LBP_RADIUS, method="uniform")
    hist = np.bincount(codes.astype(np.int64).ravel(), minlength=LBP_POINTS + 2).astype(np.float64)
    return hist / max(hist.sum(), 1.0)


def lbp_texture_similarity(ga: np.ndarray, gb: np.ndarray) -> float:
    """Intersección de histogramas LBP uniformes (8 vecinos, radio 1)."""
    ha, hb = _lbp_histogram(ga), _lbp_histogram(gb)
    return 100.0 * float(np.minimum(ha, hb).sum())


def signal_texture_similarity(va: np.ndarray, vb: np.ndarray) -> float:
    """Equivalente 1D del LBP: coincidencia del signo de las diferencias consecutivas."""
    da, db = np.sign(np.diff(va)), np.sign(np.diff(vb))
    if da.size == 0:
        return 100.0 if np.array_equal(va, vb) else 0.0
    return 100.0 * float(np.mean(da == db))


def histogram_correlation(x: np.ndarray, y: np.ndarray) -> float:
    x = np.asarray(x, dtype=np.float32).ravel()
    y = np.asarray(y, dtype=np.float32).ravel()
    lo = float(min(x.min(), y.min()))
    hi = float(max(x.max(), y.max()))
    if hi - lo < 1e-9:
        return 100.0
    ha = np.histogram(x, bins=HIST_BINS, range=(lo, hi))[0].astype(np.float32)
    hb = np.histogram(y, bins=HIST_BINS, range=(lo, hi))[0].astype(np.float32)
    corr = cv2.compareHist(ha.reshape(-1, 1), hb.reshape(-1, 1), cv2.HISTCMP_CORREL)
    return 100.0 * max(0.0, float(corr))
