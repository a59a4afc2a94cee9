# verificacion_facial/urls.py
from django.urls import path
from verificacion_facial.presentation.api import (
    FaceVerifyAPIView,
    ConsultVerificationAPIView,
    RecentVerificationsAPIView,
    TraceProcessAPIView,
    VerificationStatsAPIView,
    FaceQualityAPIView,
)

app_name = "verificacion_facial"

urlpatterns = [
    path('faces/verify', FaceVerifyAPIView.as_view(), name='verify'),
    path('faces/verify/<str:uuid_verificacion>', ConsultVerificationAPIView.as_view(), name='verify-detail'),
    path('faces/verifications', RecentVerificationsAPIView.as_view(), name='verifications'),
    path('faces/trace/<str:uuid_proceso>', TraceProcessAPIView.as_view(), name='trace'),
    path('faces/stats', VerificationStatsAPIView.as_view(), name='stats'),
    path('faces/quality', FaceQualityAPIView.as_view(), name='quality'),
]
