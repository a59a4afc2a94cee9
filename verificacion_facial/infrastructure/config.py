# verificacion_facial/infrastructure/config.py
import atexit
import os
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..domain.value_objects import AlgorithmKind, VerificationConfig
from ..domain.engine import FaceVerificationEngine
from ..domain.quality import QualityAssessor
from ..application.verify_face_service import VerifyFaceService
from ..application.assess_quality_service import AssessQualityService
from .detection.rekognition_face_detector import RekognitionFaceDetector
from .storage.local_result_repository import LocalVerificationResultRepository

# --- Helpers ENV robustos (soportan "55.0 # comentario") ---
def _env_float(var: str, default: float) -> float:
    raw = os.getenv(var, str(default))
    m = re.search(r"[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?", str(raw))
    return float(m.group(0)) if m else float(default)

def _env_int(var: str, default: int) -> int:
    return int(round(_env_float(var, default)))

def _env_bool(var: str, default: bool) -> bool:
    raw = str(os.getenv(var, "1" if default else "0")).strip().lower()
    return raw.split("#")[0].strip() in ("1", "true", "yes", "on")

def get_verification_config() -> VerificationConfig:
    defaults = VerificationConfig()
    return VerificationConfig(
        weights={
            AlgorithmKind.ARCFACE: _env_float("FACE_WEIGHT_ARCFACE", defaults.weights[AlgorithmKind.ARCFACE]),
            AlgorithmKind.TRIPLET: _env_float("FACE_WEIGHT_TRIPLET", defaults.weights[AlgorithmKind.TRIPLET]),
            AlgorithmKind.COSFACE: _env_float("FACE_WEIGHT_COSFACE", defaults.weights[AlgorithmKind.COSFACE]),
            AlgorithmKind.SPHEREFACE: _env_float("FACE_WEIGHT_SPHEREFACE", defaults.weights[AlgorithmKind.SPHEREFACE]),
        },
        base_threshold=_env_float("FACE_BASE_THRESHOLD", defaults.base_threshold),
        threshold_bounds=(
            _env_float("FACE_THRESHOLD_MIN", defaults.threshold_bounds[0]),
            _env_float("FACE_THRESHOLD_MAX", defaults.threshold_bounds[1]),
        ),
        quality_floor=_env_float("FACE_QUALITY_FLOOR", defaults.quality_floor),
        min_votes=_env_int("FACE_MIN_VOTES", defaults.min_votes),
        variance_sensitivity=_env_float("FACE_VARIANCE_SENSITIVITY", defaults.variance_sensitivity),
        variance_tolerance=_env_float("FACE_VARIANCE_TOLERANCE", defaults.variance_tolerance),
        abort_on_low_quality=_env_bool("FACE_ABORT_ON_LOW_QUALITY", defaults.abort_on_low_quality),
    )

def get_flow_log_dir() -> str:
    return os.getenv("FLOW_LOG_DIR", os.path.join(os.getcwd(), "verificaciones"))

# Pool compartido para evaluar algoritmos en paralelo (FACE_WORKERS=0 -> secuencial).
# Vive lo que vive el proceso; se recrea si cambia FACE_WORKERS y se cierra en atexit.
_executor: Optional[ThreadPoolExecutor] = None
_executor_workers = 0
_executor_lock = threading.Lock()

def _shared_executor() -> Optional[ThreadPoolExecutor]:
    global _executor, _executor_workers
    workers = _env_int("FACE_WORKERS", 0)
    with _executor_lock:
        if _executor is not None and workers != _executor_workers:
            _executor.shutdown(wait=False)
            _executor, _executor_workers = None, 0
        if workers <= 0:
            return None
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="face-verify")
            _executor_workers = workers
        return _executor

def shutdown_executor():
    global _executor, _executor_workers
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=True)
        _executor, _executor_workers = None, 0

atexit.register(shutdown_executor)

def build_result_repository() -> LocalVerificationResultRepository:
    return LocalVerificationResultRepository(get_flow_log_dir())

def build_verify_service(config: Optional[VerificationConfig] = None) -> VerifyFaceService:
    engine = FaceVerificationEngine(config or get_verification_config(), executor=_shared_executor())
    return VerifyFaceService(engine=engine, result_repo=build_result_repository())

def build_quality_service() -> AssessQualityService:
    return AssessQualityService(
        face_detector=RekognitionFaceDetector(
            region=os.getenv("AWS_REGION", "us-east-1"),
            min_confidence=_env_float("FACE_DETECT_MIN_CONFIDENCE", 70.0),
        ),
        assessor=QualityAssessor(),
    )
