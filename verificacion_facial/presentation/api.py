# verificacion_facial/presentation/api.py
import logging
from typing import Any, Dict, List

from botocore.exceptions import BotoCoreError, ClientError
from django.http import FileResponse
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..application.assess_quality_service import b64_to_gray
from ..domain.errors import (
    FeatureInvalid, InternalComputationError, LowQualityInput, NoFaceDetected, VerificationError,
)
from ..domain.value_objects import FaceSample, SampleRole
from ..infrastructure.config import build_quality_service, build_result_repository, build_verify_service
from .schemas import (
    ErrorResponseSerializer,
    FaceQualityRequestSerializer,
    FaceQualityResponseSerializer,
    FaceVerifyRequestSerializer,
    FaceVerifyResponseSerializer,
    RecentVerificationsResponseSerializer,
    VerificationRecordSerializer,
    VerificationStatsSerializer,
)

logger = logging.getLogger("verificacion.api")

# "no se pudo evaluar" nunca sale como 200: el cliente decide si pide otra captura
ERROR_STATUS = {
    FeatureInvalid: status.HTTP_400_BAD_REQUEST,
    NoFaceDetected: status.HTTP_422_UNPROCESSABLE_ENTITY,
    LowQualityInput: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InternalComputationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(ex: VerificationError, **extra) -> Response:
    code = ERROR_STATUS.get(type(ex), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({"status": "error", "message": ex.message, "error": ex.to_dict(), **extra}, status=code)


def _paginate(items: List[Dict[str, Any]], offset: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "items": items,
        "page": {
            "offset": offset,
            "limit": limit,
            "returned": len(items),
            "total": total,
            "has_more": (offset + limit) < total,
        },
    }


def _sample_from(data: Dict[str, Any], role: SampleRole) -> FaceSample:
    crop_b64 = data.get("faceCropBase64")
    return FaceSample(
        embedding=data["embedding"],
        landmarks=[tuple(p) for p in data["landmarks"]],
        quality_score=data["qualityScore"],
        role=role,
        face_crop=b64_to_gray(crop_b64) if crop_b64 else None,
    )


class FaceVerifyAPIView(APIView):
    """
    POST /api/faces/verify

    Body:
    {
      "uuidProceso": "04205d9c-1439-4a6e-a06c-21012a4ea744",
      "selfie":   {"embedding": [...], "landmarks": [[x, y], ...], "qualityScore": 87.5},
      "document": {"embedding": [...], "landmarks": [[x, y], ...], "qualityScore": 64.0}
    }
    """
    @swagger_auto_schema(
        operation_summary="Verificar selfie vs. foto del documento",
        operation_description=(
            "Ejecuta el ensemble ArcFace/Triplet/CosFace/SphereFace con umbral adaptativo.\n\n"
            "- 200: evaluado (aprobado o rechazado, ver `data.passed`).\n"
            "- 400/422/500: no se pudo evaluar (`error.kind`, `error.retake`)."
        ),
        request_body=FaceVerifyRequestSerializer,
        responses={
            200: FaceVerifyResponseSerializer,
            400: ErrorResponseSerializer,
            422: ErrorResponseSerializer,
            500: ErrorResponseSerializer,
        },
        tags=["Verificación facial"],
    )
    def post(self, request):
        req = FaceVerifyRequestSerializer(data=request.data)
        if not req.is_valid():
            return Response(
                {"status": "error", "message": "Request inválido", "errors": req.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        uuid_proceso = str(req.validated_data["uuidProceso"])

        try:
            selfie = _sample_from(req.validated_data["selfie"], SampleRole.SELFIE)
            document = _sample_from(req.validated_data["document"], SampleRole.DOCUMENT)
            uuid_verificacion, result = build_verify_service().execute(uuid_proceso, selfie, document)
        except VerificationError as ex:
            return _error_response(ex, uuidProceso=uuid_proceso)

        msg = (
            f"Score {result.score:.2f} (≥ {result.required_score:.2f}) - aprobado."
            if result.passed else
            f"Score {result.score:.2f} / requerido {result.required_score:.2f}, "
            f"votos {result.votes}/4 - no aprobado."
        )
        return Response({
            "status": "success" if result.passed else "false",
            "message": msg,
            "uuidProceso": uuid_proceso,
            "uuidVerificacion": uuid_verificacion,
            "data": result.to_dict(),
        }, status=status.HTTP_200_OK)


class FaceQualityAPIView(APIView):
    """
    POST /api/faces/quality
    Body: {"imageBase64": "data:image/jpeg;base64,...", "role": "selfie" | "document"}
    """
    @swagger_auto_schema(
        operation_summary="Calidad de un rostro (0..100)",
        request_body=FaceQualityRequestSerializer,
        responses={200: FaceQualityResponseSerializer, 400: ErrorResponseSerializer, 422: ErrorResponseSerializer},
        tags=["Verificación facial"],
    )
    def post(self, request):
        req = FaceQualityRequestSerializer(data=request.data)
        if not req.is_valid():
            return Response(
                {"status": "error", "message": "Request inválido", "errors": req.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        role = SampleRole(req.validated_data["role"])
        try:
            report = build_quality_service().execute(req.validated_data["imageBase64"], role)
        except VerificationError as ex:
            return _error_response(ex, role=role.value)
        except (BotoCoreError, ClientError) as ex:
            logger.error({"event": "detector_unavailable", "error": str(ex)})
            return Response(
                {"status": "error", "message": "Detector de rostros no disponible"},
                status=status.HTTP_502_BAD_GATEWAY,
            )
        return Response({"status": "success", "role": role.value, "data": report.to_dict()}, status=status.HTTP_200_OK)


# ---------- Consultar por uuid_verificacion ----------
download_param = openapi.Parameter(
    "download",
    openapi.IN_QUERY,
    description="Si es true/1, descarga el JSON original como attachment.",
    type=openapi.TYPE_BOOLEAN,
)

class ConsultVerificationAPIView(APIView):
    """GET /api/faces/verify/<uuid_verificacion>[?download=1]"""
    @swagger_auto_schema(
        operation_summary="Consultar verificación por uuid",
        manual_parameters=[download_param],
        responses={200: VerificationRecordSerializer, 404: "No existe la verificación solicitada."},
        tags=["Verificación facial"],
    )
    def get(self, request, uuid_verificacion: str):
        repo = build_result_repository()
        path = repo.record_path(uuid_verificacion)
        if path is None:
            return Response({"detail": "No existe la verificación solicitada."}, status=status.HTTP_404_NOT_FOUND)

        download = (request.query_params.get("download") or "false").lower() in ("1", "true", "yes")
        if download:
            return FileResponse(
                open(path, "rb"),
                as_attachment=True,
                filename=f"{uuid_verificacion}.json",
                content_type="application/json; charset=utf-8",
            )

        payload = repo.get(uuid_verificacion) or {"uuid_verificacion": uuid_verificacion, "detail": "no disponible"}
        base_url = request.build_absolute_uri().split("?", 1)[0]
        payload["_links"] = {"self": request.build_absolute_uri(), "download": f"{base_url}?download=1"}
        return Response(payload, status=status.HTTP_200_OK)


offset_param = openapi.Parameter(
    "offset", openapi.IN_QUERY, description="Desplazamiento de paginación.", type=openapi.TYPE_INTEGER, default=0
)
limit_param = openapi.Parameter(
    "limit", openapi.IN_QUERY, description="Tamaño de página.", type=openapi.TYPE_INTEGER, default=10
)

class RecentVerificationsAPIView(APIView):
    """GET /api/faces/verifications?offset=0&limit=10 (más nuevo primero)"""
    @swagger_auto_schema(
        operation_summary="Verificaciones recientes",
        manual_parameters=[offset_param, limit_param],
        responses={200: RecentVerificationsResponseSerializer},
        tags=["Verificación facial"],
    )
    def get(self, request):
        try:
            offset = max(0, int(request.query_params.get("offset") or 0))
            limit = max(1, min(100, int(request.query_params.get("limit") or 10)))
        except ValueError:
            return Response({"detail": "offset/limit inválidos"}, status=status.HTTP_400_BAD_REQUEST)

        repo = build_result_repository()
        items = repo.list_recent(limit=limit, offset=offset)
        return Response(_paginate(items, offset, limit, repo.count()), status=status.HTTP_200_OK)


class TraceProcessAPIView(APIView):
    """GET /api/faces/trace/<uuid_proceso>: todas las verificaciones de un proceso."""
    @swagger_auto_schema(operation_summary="Trazabilidad por uuidProceso", tags=["Verificación facial"])
    def get(self, request, uuid_proceso: str):
        items = build_result_repository().trace(uuid_proceso)
        return Response({"uuid_proceso": uuid_proceso, "count": len(items), "items": items}, status=status.HTTP_200_OK)


class VerificationStatsAPIView(APIView):
    """GET /api/faces/stats"""
    @swagger_auto_schema(
        operation_summary="Estadísticas de verificaciones",
        responses={200: VerificationStatsSerializer},
        tags=["Verificación facial"],
    )
    def get(self, request):
        return Response(build_result_repository().stats(), status=status.HTTP_200_OK)
