"""
API tests for /api/faces/* (APIClient, results stored under a tmp FLOW_LOG_DIR).
"""

import base64
import math
import uuid
from unittest.mock import Mock

import cv2
import numpy as np
import pytest
from botocore.exceptions import ClientError
from rest_framework.test import APIClient

from verificacion_facial.application.assess_quality_service import AssessQualityService
from verificacion_facial.domain.quality import QualityAssessor

LANDMARKS = [[38.3, 51.7], [73.5, 51.5], [56.0, 71.7], [41.5, 92.4], [70.7, 92.2]]


@pytest.fixture(autouse=True)
def flow_log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOW_LOG_DIR", str(tmp_path))
    monkeypatch.delenv("FACE_WORKERS", raising=False)
    return tmp_path


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def payload(basis):
    def _payload(cosine=1.0, selfie_quality=90.0, document_quality=90.0, document_embedding=None):
        a, e = basis
        b = cosine * a + math.sqrt(max(0.0, 1 - cosine * cosine)) * e
        return {
            "uuidProceso": str(uuid.uuid4()),
            "selfie": {"embedding": a.tolist(), "landmarks": LANDMARKS, "qualityScore": selfie_quality},
            "document": {
                "embedding": document_embedding if document_embedding is not None else b.tolist(),
                "landmarks": LANDMARKS,
                "qualityScore": document_quality,
            },
        }
    return _payload


def _png_b64(img):
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return base64.b64encode(buf.tobytes()).decode("ascii")


# ---- POST /api/faces/verify ----

def test_verify_match(client, payload):
    body = payload(1.0)
    res = client.post("/api/faces/verify", body, format="json")

    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "success"
    assert data["uuidProceso"] == body["uuidProceso"]
    assert data["uuidVerificacion"]
    assert data["data"]["passed"] is True
    assert data["data"]["confidence"] == "high"
    assert data["data"]["ensembleStats"]["votes"] == 4
    assert set(data["data"]["algorithms"]) == {"arcface", "triplet", "cosface", "sphereface"}


def test_verify_rejection_is_still_200(client, payload):
    res = client.post("/api/faces/verify", payload(0.1), format="json")

    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "false"
    assert data["data"]["passed"] is False
    assert data["data"]["confidence"] == "low"


def test_verify_dimension_mismatch_is_400(client, payload):
    res = client.post("/api/faces/verify", payload(document_embedding=[0.1] * 64), format="json")

    assert res.status_code == 400
    data = res.json()
    assert data["status"] == "error"
    assert data["error"]["kind"] == "feature_invalid"
    assert data["error"]["retake"] is False


def test_verify_zero_embedding_is_400(client, payload):
    res = client.post("/api/faces/verify", payload(document_embedding=[0.0] * 128), format="json")
    assert res.status_code == 400
    assert res.json()["error"]["kind"] == "feature_invalid"


def test_verify_low_quality_abort_is_422(client, payload, monkeypatch):
    monkeypatch.setenv("FACE_ABORT_ON_LOW_QUALITY", "1")
    res = client.post("/api/faces/verify", payload(1.0, document_quality=10.0), format="json")

    assert res.status_code == 422
    assert res.json()["error"]["kind"] == "low_quality_input"
    assert res.json()["error"]["retake"] is True


def test_verify_invalid_request(client, payload):
    body = payload()
    del body["selfie"]
    assert client.post("/api/faces/verify", body, format="json").status_code == 400

    body = payload()
    body["document"]["qualityScore"] = 140
    assert client.post("/api/faces/verify", body, format="json").status_code == 400

    body = payload()
    body["selfie"]["landmarks"] = [[1.0, 2.0]]
    assert client.post("/api/faces/verify", body, format="json").status_code == 400


def test_verify_with_face_crops(client, payload):
    rng = np.random.default_rng(5)
    crop = _png_b64(rng.integers(0, 256, size=(112, 112), dtype=np.uint8))
    body = payload(1.0)
    body["selfie"]["faceCropBase64"] = crop
    body["document"]["faceCropBase64"] = crop

    res = client.post("/api/faces/verify", body, format="json")

    assert res.status_code == 200
    assert res.json()["data"]["metrics"]["structural"] == pytest.approx(100.0, abs=0.01)


# ---- consultas ----

def test_saved_verification_can_be_consulted(client, payload):
    body = payload(1.0)
    uuid_v = client.post("/api/faces/verify", body, format="json").json()["uuidVerificacion"]

    res = client.get(f"/api/faces/verify/{uuid_v}")
    assert res.status_code == 200
    record = res.json()
    assert record["uuid_verificacion"] == uuid_v
    assert record["uuid_proceso"] == body["uuidProceso"]
    assert record["result"]["passed"] is True
    assert record["_links"]["download"].endswith("?download=1")

    download = client.get(f"/api/faces/verify/{uuid_v}", {"download": "1"})
    assert download.status_code == 200
    assert "attachment" in download["Content-Disposition"]
    download.close()


def test_unknown_verification_is_404(client):
    assert client.get(f"/api/faces/verify/{uuid.uuid4()}").status_code == 404


def test_recent_trace_and_stats(client, payload):
    body = payload(1.0)
    client.post("/api/faces/verify", body, format="json")
    body_fail = payload(0.0)
    body_fail["uuidProceso"] = body["uuidProceso"]
    client.post("/api/faces/verify", body_fail, format="json")

    recent = client.get("/api/faces/verifications", {"limit": 1}).json()
    assert recent["page"] == {"offset": 0, "limit": 1, "returned": 1, "total": 2, "has_more": True}

    trace = client.get(f"/api/faces/trace/{body['uuidProceso']}").json()
    assert trace["count"] == 2

    stats = client.get("/api/faces/stats").json()
    assert stats["total"] == 2
    assert stats["passed"] == 1
    assert stats["failed"] == 1


def test_recent_with_bad_paging_is_400(client):
    assert client.get("/api/faces/verifications", {"offset": "abc"}).status_code == 400


# ---- POST /api/faces/quality ----

@pytest.fixture
def detector(monkeypatch):
    det = Mock()
    monkeypatch.setattr(
        "verificacion_facial.presentation.api.build_quality_service",
        lambda: AssessQualityService(det, QualityAssessor()),
    )
    return det


@pytest.fixture
def image_b64():
    rng = np.random.default_rng(9)
    return _png_b64(rng.integers(0, 256, size=(240, 320, 3), dtype=np.uint8))


def test_quality_report(client, detector, image_b64):
    detector.detect.return_value = {"bbox": (60, 40, 260, 220), "landmarks": [], "pose": {}}
    res = client.post("/api/faces/quality", {"imageBase64": image_b64, "role": "document"}, format="json")

    assert res.status_code == 200
    data = res.json()
    assert data["role"] == "document"
    assert 0.0 <= data["data"]["score"] <= 100.0


def test_quality_without_face_is_422(client, detector, image_b64):
    detector.detect.return_value = None
    res = client.post("/api/faces/quality", {"imageBase64": image_b64}, format="json")

    assert res.status_code == 422
    assert res.json()["error"]["kind"] == "no_face_detected"
    assert res.json()["error"]["retake"] is True


def test_quality_bad_image_is_400(client, detector):
    res = client.post("/api/faces/quality", {"imageBase64": "bm8gZXMgdW5hIGltYWdlbg=="}, format="json")
    assert res.status_code == 400
    detector.detect.assert_not_called()


def test_quality_detector_failure_is_502(client, detector, image_b64):
    detector.detect.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DetectFaces")
    res = client.post("/api/faces/quality", {"imageBase64": image_b64}, format="json")
    assert res.status_code == 502
