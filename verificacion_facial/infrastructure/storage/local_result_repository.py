# verificacion_facial/infrastructure/storage/local_result_repository.py
import os, json, uuid, datetime, logging, threading
from typing import Any, Dict, List, Optional

from ...domain.value_objects import VerificationResult

logger = logging.getLogger("verificacion.storage")


def _now_iso():
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _ensure_dir(path: str):
    os.makedirs(path, exist_ok=True)


def _safe_write_json(path: str, data: Dict[str, Any]):
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


def _read_json_file(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError:
        logger.warning({"event": "corrupt_record", "path": path})
        return None


class LocalVerificationResultRepository:
    """
    Un JSON por verificación en base_dir/<uuid_verificacion>.json (escritura atómica)
    + índice por proceso en base_dir/trace_<uuid_proceso>.json (más nuevo primero).
    """

    def __init__(self, base_dir: str):
        self.base_dir = base_dir
        self._lock = threading.Lock()

    def _record_path(self, uuid_verificacion: str) -> str:
        return os.path.join(self.base_dir, f"{uuid_verificacion}.json")

    def save(self, uuid_proceso: str, result: VerificationResult, extra: Optional[Dict[str, Any]] = None) -> str:
        uuid_verificacion = str(uuid.uuid4())
        record = {
            "uuid_verificacion": uuid_verificacion,
            "uuid_proceso": uuid_proceso,
            "created_at_utc": _now_iso(),
            "result": result.to_dict(),
        }
        if extra:
            record["extra"] = extra

        with self._lock:
            _ensure_dir(self.base_dir)
            _safe_write_json(self._record_path(uuid_verificacion), record)
            self._append_process_index(uuid_proceso, {
                "uuid_verificacion": uuid_verificacion,
                "passed": result.passed,
                "score": round(result.score, 2),
                "confidence": result.confidence.value,
                "created_at_utc": record["created_at_utc"],
            })
        logger.info({"event": "record_written", "uuid_verificacion": uuid_verificacion, "uuid_proceso": uuid_proceso})
        return uuid_verificacion

    def _append_process_index(self, uuid_proceso: str, item: Dict[str, Any]):
        idx_path = os.path.join(self.base_dir, f"trace_{uuid_proceso}.json")
        idx = _read_json_file(idx_path) or {"uuid_proceso": uuid_proceso, "count": 0, "items": []}
        idx["items"].insert(0, item)
        idx["count"] = len(idx["items"])
        _safe_write_json(idx_path, idx)

    def record_path(self, uuid_verificacion: str) -> Optional[str]:
        path = self._record_path(uuid_verificacion)
        return path if os.path.exists(path) else None

    def get(self, uuid_verificacion: str) -> Optional[Dict[str, Any]]:
        return _read_json_file(self._record_path(uuid_verificacion))

    def trace(self, uuid_proceso: str) -> List[Dict[str, Any]]:
        idx = _read_json_file(os.path.join(self.base_dir, f"trace_{uuid_proceso}.json"))
        return (idx or {}).get("items", [])

    def _all_records(self) -> List[Dict[str, Any]]:
        if not os.path.isdir(self.base_dir):
            return []
        out = []
        for name in os.listdir(self.base_dir):
            if not name.endswith(".json") or name.startswith("trace_"):
                continue
            data = _read_json_file(os.path.join(self.base_dir, name))
            if data and "result" in data:
                out.append(data)
        out.sort(key=lambda r: r.get("created_at_utc") or "", reverse=True)
        return out

    def list_recent(self, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        return self._all_records()[offset: offset + limit]

    def count(self) -> int:
        return len(self._all_records())

    def stats(self) -> Dict[str, Any]:
        records = self._all_records()
        total = len(records)
        passed = sum(1 for r in records if r["result"].get("passed"))
        avg = sum(float(r["result"].get("score") or 0.0) for r in records) / total if total else 0.0
        return {"total": total, "passed": passed, "failed": total - passed, "avgScore": round(avg, 2)}
