# verificacion_facial/application/assess_quality_service.py
import base64
import logging

import cv2
import numpy as np

from ..domain.errors import FeatureInvalid, NoFaceDetected
from ..domain.interfaces import FaceDetector
from ..domain.quality import FaceRegion, QualityAssessor, QualityReport
from ..domain.value_objects import SampleRole

logger = logging.getLogger("verificacion.verify")


def b64_to_bgr(b64: str) -> np.ndarray:
    """Convierte base64 (con o sin prefijo data:) a imagen BGR (OpenCV)"""
    try:
        data = base64.b64decode(b64.split(",")[-1], validate=False)
    except (ValueError, TypeError) as ex:
        raise FeatureInvalid("imageBase64 inválido (no es base64)") from ex
    arr = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR) if arr.size else None
    if img is None:
        raise FeatureInvalid("imageBase64 inválido (no se pudo decodificar)")
    return img


def b64_to_gray(b64: str) -> np.ndarray:
    return cv2.cvtColor(b64_to_bgr(b64), cv2.COLOR_BGR2GRAY)


class AssessQualityService:
    """
    Imagen (selfie o foto del documento) -> QualityReport.
    La detección la hace el puerto FaceDetector; el puntaje, el QualityAssessor.
    """

    def __init__(self, face_detector: FaceDetector, assessor: QualityAssessor):
        self.face_detector = face_detector
        self.assessor = assessor

    def execute(self, image_b64: str, role: SampleRole) -> QualityReport:
        img = b64_to_bgr(image_b64)
        h, w = img.shape[:2]

        det = self.face_detector.detect(img)
        if not det or not det.get("bbox"):
            logger.info({"event": "quality_no_face", "role": role.value, "image_size": f"{w}x{h}"})
            raise NoFaceDetected("No se detectó rostro en la imagen", {"role": role.value})

        region = FaceRegion(
            image=img,
            bbox=tuple(det["bbox"]),
            landmarks=det.get("landmarks") or (),
            pose=det.get("pose") or None,
            role=role,
        )
        report = self.assessor.assess(region)
        logger.info({"event": "quality_report", "role": role.value, "image_size": f"{w}x{h}", **report.to_dict()})
        return report
