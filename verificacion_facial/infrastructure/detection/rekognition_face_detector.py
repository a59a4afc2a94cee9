import os
import io
import cv2
import boto3
import logging
from typing import Optional, Dict, List, Tuple
from PIL import Image

logger = logging.getLogger("verificacion.verify")

# orden de 5 puntos que espera estimate_pose_from_landmarks
FIVE_POINT_TYPES = ("eyeLeft", "eyeRight", "nose", "mouthLeft", "mouthRight")


def _to_jpg_bytes(img_bgr) -> bytes:
    rgb = cv2.cvtColor(img_bgr, cv2.COLOR_BGR2RGB)
    buf = io.BytesIO()
    Image.fromarray(rgb).save(buf, format="JPEG", quality=90)
    return buf.getvalue()


def _relbox_to_pixels(rel_box: Dict[str, float], width: int, height: int) -> Tuple[int, int, int, int]:
    x1 = int(round(rel_box["Left"] * width))
    y1 = int(round(rel_box["Top"] * height))
    x2 = int(round((rel_box["Left"] + rel_box["Width"]) * width))
    y2 = int(round((rel_box["Top"] + rel_box["Height"]) * height))
    x1 = max(0, min(x1, width - 1)); y1 = max(0, min(y1, height - 1))
    x2 = max(0, min(x2, width)); y2 = max(0, min(y2, height))
    if x2 <= x1: x2 = min(width, x1 + 1)
    if y2 <= y1: y2 = min(height, y1 + 1)
    return (x1, y1, x2, y2)


def five_point_landmarks(landmarks: List[Dict], width: int, height: int) -> List[Tuple[float, float]]:
    """Landmarks de Rekognition (relativos, por Type) -> 5 puntos en píxeles, en orden fijo."""
    by_type = {lm.get("Type"): lm for lm in landmarks or []}
    if not all(t in by_type for t in FIVE_POINT_TYPES):
        return []
    return [(float(by_type[t]["X"]) * width, float(by_type[t]["Y"]) * height) for t in FIVE_POINT_TYPES]


class RekognitionFaceDetector:
    """
    FaceDetector con AWS Rekognition DetectFaces.
    Retorna:
      {
        "bbox": (x1,y1,x2,y2),
        "landmarks": [(x,y) x5] | [],
        "confidence": float(0..100),
        "area_rel": float(0..1),
        "pose": {"Yaw": float, "Pitch": float, "Roll": float} | {},
      }
    o None si no hay rostro válido. Errores de AWS se propagan (no son "sin rostro").
    """
    def __init__(
        self,
        region: Optional[str] = None,
        min_confidence: float = 70.0,
        client=None,
    ):
        self.client = client or boto3.client("rekognition", region_name=region or os.getenv("AWS_REGION", "us-east-1"))
        self.min_confidence = float(min_confidence)

    def detect(self, img_bgr) -> Optional[dict]:
        h, w = img_bgr.shape[:2]
        resp = self.client.detect_faces(Image={"Bytes": _to_jpg_bytes(img_bgr)}, Attributes=["ALL"])
        faces = [
            f for f in (resp.get("FaceDetails") or [])
            if f.get("BoundingBox") and float(f.get("Confidence", 0.0)) >= self.min_confidence
        ]
        if not faces:
            logger.info({"event": "rek_face_detect", "faces_total": len(resp.get("FaceDetails") or []), "candidates": 0})
            return None

        # la cara más grande; el tamaño mínimo lo evalúa el QualityAssessor
        best = max(faces, key=lambda f: f["BoundingBox"]["Width"] * f["BoundingBox"]["Height"])
        bbox = _relbox_to_pixels(best["BoundingBox"], w, h)
        pose = {k: float(v) for k, v in (best.get("Pose") or {}).items() if k in ("Yaw", "Pitch", "Roll")}
        area_rel = float(best["BoundingBox"]["Width"] * best["BoundingBox"]["Height"])

        logger.info({
            "event": "rek_face_detect",
            "faces_total": len(resp.get("FaceDetails") or []),
            "candidates": len(faces),
            "chosen_area_pct": round(100.0 * area_rel, 2),
            "confidence": round(float(best.get("Confidence", 0.0)), 2),
            "pose": {k: round(v, 1) for k, v in pose.items()},
            "bbox_pixels": bbox,
        })
        return {
            "bbox": bbox,
            "landmarks": five_point_landmarks(best.get("Landmarks"), w, h),
            "confidence": float(best.get("Confidence", 0.0)),
            "area_rel": area_rel,
            "pose": pose,
        }
