# verificacion_facial/application/verify_face_service.py
from typing import Optional
import logging

from ..domain.engine import FaceVerificationEngine
from ..domain.errors import VerificationError
from ..domain.interfaces import VerificationResultRepository
from ..domain.value_objects import FaceSample, VerificationResult

logger = logging.getLogger("verificacion.verify")


class VerifyFaceService:
    """
    Orquesta una verificación selfie vs. documento:
      1) motor de ensemble (puro)
      2) traza de auditoría en logs
      3) entrega del resultado al repositorio (si hay uno configurado)
    """

    def __init__(self, engine: FaceVerificationEngine, result_repo: Optional[VerificationResultRepository] = None):
        self.engine = engine
        self.result_repo = result_repo

    def execute(self, uuid_proceso: str, selfie: FaceSample, document: FaceSample):
        """Devuelve (uuid_verificacion | None, VerificationResult). Lanza VerificationError."""
        logger.info({
            "uuid": uuid_proceso,
            "event": "verify_started",
            "embedding_dim": len(selfie.embedding),
            "selfie_quality": round(selfie.quality_score, 2),
            "document_quality": round(document.quality_score, 2),
            "crops": selfie.face_crop is not None and document.face_crop is not None,
        })

        try:
            result = self.engine.verify(selfie, document)
        except VerificationError as ex:
            logger.info({"uuid": uuid_proceso, "event": "verify_not_evaluated", **ex.to_dict()})
            raise

        self._log_breakdown(uuid_proceso, result)

        uuid_verificacion = None
        if self.result_repo is not None:
            uuid_verificacion = self.result_repo.save(uuid_proceso, result)
            logger.info({"uuid": uuid_proceso, "event": "result_saved", "uuid_verificacion": uuid_verificacion})
        return uuid_verificacion, result

    @staticmethod
    def _log_breakdown(uuid_proceso: str, result: VerificationResult):
        logger.info({
            "uuid": uuid_proceso,
            "event": "algorithms",
            **{k.value: {"score": round(r.score, 2), "matched": r.matched, "confidence": r.confidence.value}
               for k, r in result.algorithms.items()},
        })
        logger.info({"uuid": uuid_proceso, "event": "ensemble_stats", **result.ensemble_stats.to_dict()})
        logger.info({
            "uuid": uuid_proceso,
            "event": "final_decision",
            "status": "success" if result.passed else "false",
            "score": round(result.score, 2),
            "required_score": round(result.required_score, 2),
            "confidence": result.confidence.value,
            "selfie_quality": round(result.selfie_quality, 2),
            "document_quality": round(result.document_quality, 2),
        })
