from __future__ import annotations

import math
from typing import Iterable, Tuple

import numpy as np

from .errors import FeatureInvalid, InternalComputationError
from .value_objects import FaceSample


def l2_normalize(vec: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """L2-normaliza un vector 1D. Norma ~0 es un rasgo inválido, no se corrige."""
    arr = np.asarray(vec, dtype=np.float64).reshape(-1)
    denom = float(np.linalg.norm(arr))
    if denom < eps:
        raise FeatureInvalid("embedding con norma cero", {"norm": denom})
    return arr / denom


def check_embedding(sample: FaceSample) -> np.ndarray:
    vec = sample.vector()
    if vec.size == 0:
        raise FeatureInvalid("embedding vacío", {"role": sample.role.value})
    if not np.all(np.isfinite(vec)):
        raise FeatureInvalid("embedding con valores no finitos", {"role": sample.role.value})
    return vec


def normalized_pair(a: FaceSample, b: FaceSample) -> Tuple[np.ndarray, np.ndarray]:
    va, vb = check_embedding(a), check_embedding(b)
    if va.shape != vb.shape:
        raise FeatureInvalid(
            "dimensión de embeddings distinta",
            {f"{a.role.value}_dim": int(va.size), f"{b.role.value}_dim": int(vb.size)},
        )
    return l2_normalize(va), l2_normalize(vb)


def cosine_of(na: np.ndarray, nb: np.ndarray) -> float:
    """Coseno entre vectores ya normalizados, acotado a [-1, 1]."""
    return float(np.clip(math.fsum(na * nb), -1.0, 1.0))


def ensure_finite(**values: float) -> None:
    for name, value in values.items():
        if not math.isfinite(float(value)):
            raise InternalComputationError(f"valor no finito en {name}", {name: str(value)})


def ensure_all_finite(name: str, values: Iterable[float]) -> None:
    for value in values:
        if not math.isfinite(float(value)):
            raise InternalComputationError(f"valor no finito en {name}", {name: str(value)})


def sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)
