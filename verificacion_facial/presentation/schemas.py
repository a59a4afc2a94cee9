# verificacion_facial/presentation/schemas.py
from rest_framework import serializers

from ..domain.value_objects import SampleRole

# ---------- Verify (POST) ----------
class FaceSampleSerializer(serializers.Serializer):
    embedding = serializers.ListField(
        child=serializers.FloatField(), allow_empty=False,
        help_text="Embedding del extractor externo (longitud fija).",
    )
    landmarks = serializers.ListField(
        child=serializers.ListField(child=serializers.FloatField(), min_length=2, max_length=2),
        min_length=3,
        help_text="Landmarks [[x, y], ...] (mínimo 3, mismo orden en ambas muestras).",
    )
    qualityScore = serializers.FloatField(min_value=0.0, max_value=100.0, help_text="Calidad 0..100.")
    faceCropBase64 = serializers.CharField(
        required=False, allow_blank=False,
        help_text="Recorte alineado del rostro en base64 (opcional, solo métricas explicativas).",
    )

class FaceVerifyRequestSerializer(serializers.Serializer):
    uuidProceso = serializers.UUIDField(help_text="UUID del proceso general.")
    selfie = FaceSampleSerializer()
    document = FaceSampleSerializer()

class AlgorithmResultSerializer(serializers.Serializer):
    score = serializers.FloatField()
    matched = serializers.BooleanField()
    confidence = serializers.ChoiceField(choices=["low", "medium", "high"])
    angleDegrees = serializers.FloatField(required=False)
    euclideanDistance = serializers.FloatField(required=False)
    cosineValue = serializers.FloatField(required=False)

class AlgorithmsSerializer(serializers.Serializer):
    arcface = AlgorithmResultSerializer()
    triplet = AlgorithmResultSerializer()
    cosface = AlgorithmResultSerializer()
    sphereface = AlgorithmResultSerializer()

class MetricsSerializer(serializers.Serializer):
    euclidean = serializers.FloatField()
    cosine = serializers.FloatField()
    landmarks = serializers.FloatField()
    structural = serializers.FloatField()
    texture = serializers.FloatField()
    histogram = serializers.FloatField()

class EnsembleStatsSerializer(serializers.Serializer):
    weightedScore = serializers.FloatField()
    votes = serializers.IntegerField()
    variance = serializers.FloatField()
    adaptiveThreshold = serializers.FloatField()
    agreementCount = serializers.IntegerField()

class VerificationResultSerializer(serializers.Serializer):
    passed = serializers.BooleanField()
    score = serializers.FloatField()
    confidence = serializers.ChoiceField(choices=["low", "medium", "high"])
    requiredScore = serializers.FloatField()
    metrics = MetricsSerializer()
    algorithms = AlgorithmsSerializer()
    ensembleStats = EnsembleStatsSerializer()
    selfieQuality = serializers.FloatField()
    documentQuality = serializers.FloatField()

class FaceVerifyResponseSerializer(serializers.Serializer):
    status = serializers.CharField()
    message = serializers.CharField()
    uuidProceso = serializers.UUIDField()
    uuidVerificacion = serializers.UUIDField(allow_null=True)
    data = VerificationResultSerializer()

# ---------- Errores tipados ----------
class VerificationErrorSerializer(serializers.Serializer):
    kind = serializers.CharField()
    message = serializers.CharField()
    retake = serializers.BooleanField()
    details = serializers.DictField()

class ErrorResponseSerializer(serializers.Serializer):
    status = serializers.CharField()
    message = serializers.CharField()
    error = VerificationErrorSerializer()

# ---------- Quality (POST) ----------
class FaceQualityRequestSerializer(serializers.Serializer):
    imageBase64 = serializers.CharField(help_text="Imagen (selfie o foto del documento) en base64.")
    role = serializers.ChoiceField(choices=[r.value for r in SampleRole], default=SampleRole.SELFIE.value)

class QualityReportSerializer(serializers.Serializer):
    score = serializers.FloatField()
    sharpness = serializers.FloatField()
    illumination = serializers.FloatField()
    size = serializers.FloatField()
    pose = serializers.FloatField()
    area_rel = serializers.FloatField()
    tiny_face = serializers.BooleanField()

class FaceQualityResponseSerializer(serializers.Serializer):
    status = serializers.CharField()
    role = serializers.CharField()
    data = QualityReportSerializer()

# ---------- Consultas ----------
class PageMetaSerializer(serializers.Serializer):
    offset = serializers.IntegerField()
    limit = serializers.IntegerField()
    returned = serializers.IntegerField()
    total = serializers.IntegerField()
    has_more = serializers.BooleanField()

class VerificationRecordSerializer(serializers.Serializer):
    uuid_verificacion = serializers.UUIDField()
    uuid_proceso = serializers.CharField()
    created_at_utc = serializers.CharField()
    result = VerificationResultSerializer()

class RecentVerificationsResponseSerializer(serializers.Serializer):
    items = VerificationRecordSerializer(many=True)
    page = PageMetaSerializer()

class VerificationStatsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    passed = serializers.IntegerField()
    failed = serializers.IntegerField()
    avgScore = serializers.FloatField()
