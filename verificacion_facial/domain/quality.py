# verificacion_facial/domain/quality.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import cv2
import numpy as np

from .errors import NoFaceDetected
from .value_objects import SampleRole, clamp_pct
from .vector_math import ensure_finite


@dataclass(frozen=True)
class FaceRegion:
    """Cuadro completo + lo que devolvió el detector para UN rostro."""
    image: np.ndarray
    bbox: Optional[Tuple[int, int, int, int]]
    landmarks: Sequence[Tuple[float, float]] = ()
    pose: Optional[Dict[str, float]] = None
    role: SampleRole = SampleRole.SELFIE


@dataclass(frozen=True)
class QualityReport:
    score: float          # 0..100
    sharpness: float      # 0..1
    illumination: float   # 0..1
    size: float           # 0..1
    pose: float           # 0..1
    area_rel: float
    tiny_face: bool

    def to_dict(self) -> Dict[str, float]:
        return {
            "score": round(self.score, 2),
            "sharpness": round(self.sharpness, 4),
            "illumination": round(self.illumination, 4),
            "size": round(self.size, 4),
            "pose": round(self.pose, 4),
            "area_rel": round(self.area_rel, 4),
            "tiny_face": self.tiny_face,
        }


def _clip_bbox(bbox, w, h):
    x1, y1, x2, y2 = map(int, bbox)
    x1 = max(0, min(x1, w - 1))
    y1 = max(0, min(y1, h - 1))
    x2 = max(0, min(x2, w))
    y2 = max(0, min(y2, h))
    if x2 <= x1 or y2 <= y1:
        return None
    return (x1, y1, x2, y2)


def _to_gray(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return img
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def variance_of_laplacian(gray: np.ndarray) -> float:
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def estimate_pose_from_landmarks(landmarks: Sequence[Tuple[float, float]]) -> Optional[Dict[str, float]]:
    """
    Pose aproximada con el esquema de 5 puntos:
    [ojo_izq, ojo_der, nariz, boca_izq, boca_der]. Solo roll y yaw.
    """
    if len(landmarks) < 3:
        return None
    (lx, ly), (rx, ry), (nx, ny) = landmarks[0], landmarks[1], landmarks[2]
    eye_dist = math.hypot(rx - lx, ry - ly)
    if eye_dist < 1e-6:
        return None
    roll = math.degrees(math.atan2(ry - ly, rx - lx))
    # desplazamiento horizontal de la nariz respecto al punto medio de los ojos
    mid_x = (lx + rx) / 2.0
    offset = (nx - mid_x) / (eye_dist / 2.0)
    yaw = math.degrees(math.asin(max(-1.0, min(1.0, offset))))
    return {"Yaw": yaw, "Pitch": 0.0, "Roll": roll}


class QualityAssessor:
    """
    Usabilidad de un rostro en 0..100:
      nitidez (varianza del Laplaciano), iluminación (brillo + uniformidad),
      tamaño relativo del rostro en el cuadro y desviación de pose.
    Rostros diminutos quedan por debajo de 40 aunque estén nítidos.
    """

    W_SHARP = 0.35
    W_ILLUM = 0.25
    W_SIZE = 0.20
    W_POSE = 0.20

    def __init__(
        self,
        sharpness_ref: float = 300.0,
        min_face_rel_size: float = 0.015,
        min_face_side_px: int = 48,
        tiny_face_cap: float = 39.0,
        ideal_area_rel: Optional[Dict[SampleRole, float]] = None,
        max_yaw: float = 45.0,
        max_pitch: float = 35.0,
        max_roll: float = 30.0,
    ):
        self.sharpness_ref = sharpness_ref
        self.min_face_rel_size = min_face_rel_size
        self.min_face_side_px = min_face_side_px
        self.tiny_face_cap = tiny_face_cap
        # en una cédula el rostro ocupa mucho menos del cuadro que en una selfie
        self.ideal_area_rel = ideal_area_rel or {SampleRole.SELFIE: 0.12, SampleRole.DOCUMENT: 0.04}
        self.max_yaw = max_yaw
        self.max_pitch = max_pitch
        self.max_roll = max_roll

    def assess(self, region: FaceRegion) -> QualityReport:
        img = region.image
        if img is None or getattr(img, "size", 0) == 0 or region.bbox is None:
            raise NoFaceDetected("No se detectó rostro en la imagen", {"role": SampleRole(region.role).value})
        h, w = img.shape[:2]
        bbox = _clip_bbox(region.bbox, w, h)
        if bbox is None:
            raise NoFaceDetected("Bounding box inválido después de clipping", {"bbox": list(region.bbox)})

        x1, y1, x2, y2 = bbox
        gray = _to_gray(img[y1:y2, x1:x2])

        sharp = min(variance_of_laplacian(gray) / self.sharpness_ref, 1.0)
        illum = self._illumination(gray)

        area_rel = ((x2 - x1) * (y2 - y1)) / float(w * h)
        ideal = self.ideal_area_rel.get(SampleRole(region.role), 0.10)
        size = min(area_rel / ideal, 1.0)

        pose_score = self._pose_score(region.pose or estimate_pose_from_landmarks(region.landmarks))

        ensure_finite(sharpness=sharp, illumination=illum, size=size, pose=pose_score)
        score = 100.0 * (self.W_SHARP * sharp + self.W_ILLUM * illum + self.W_SIZE * size + self.W_POSE * pose_score)

        tiny = area_rel < self.min_face_rel_size or min(x2 - x1, y2 - y1) < self.min_face_side_px
        if tiny:
            score = min(score, self.tiny_face_cap)

        return QualityReport(
            score=clamp_pct(score),
            sharpness=sharp,
            illumination=illum,
            size=size,
            pose=pose_score,
            area_rel=area_rel,
            tiny_face=tiny,
        )

    @staticmethod
    def _illumination(gray: np.ndarray) -> float:
        mean = float(np.mean(gray))
        brightness = max(0.0, 1.0 - abs((mean - 128.0) / 128.0))
        gh, gw = gray.shape[:2]
        if gh < 2 or gw < 2:
            return brightness
        quads = [
            gray[: gh // 2, : gw // 2], gray[: gh // 2, gw // 2:],
            gray[gh // 2:, : gw // 2], gray[gh // 2:, gw // 2:],
        ]
        quad_means = np.array([float(np.mean(q)) for q in quads])
        uniformity = max(0.0, 1.0 - float(np.std(quad_means)) / 64.0)
        return 0.5 * brightness + 0.5 * uniformity

    def _pose_score(self, pose: Optional[Dict[str, float]]) -> float:
        if not pose:
            return 1.0   # sin información de pose no se penaliza
        deviation = max(
            abs(float(pose.get("Yaw", 0.0))) / self.max_yaw,
            abs(float(pose.get("Pitch", 0.0))) / self.max_pitch,
            abs(float(pose.get("Roll", 0.0))) / self.max_roll,
        )
        return max(0.0, 1.0 - deviation)
