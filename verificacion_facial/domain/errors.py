# verificacion_facial/domain/errors.py
from typing import Any, Dict, Optional


class VerificationError(Exception):
    """
    Fallo tipado: "no se pudo evaluar" (distinto de "evaluado y rechazado").
    retryable=True indica que conviene pedir una nueva captura.
    """
    kind = "verification_error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "retake": self.retryable,
            "details": self.details,
        }


class NoFaceDetected(VerificationError):
    kind = "no_face_detected"
    retryable = True


class FeatureInvalid(VerificationError):
    kind = "feature_invalid"


class LowQualityInput(VerificationError):
    kind = "low_quality_input"
    retryable = True


class InternalComputationError(VerificationError):
    kind = "internal_computation_error"
