import itertools
import json

import pytest

from verificacion_facial.domain.engine import FaceVerificationEngine
from verificacion_facial.infrastructure.storage import local_result_repository
from verificacion_facial.infrastructure.storage.local_result_repository import LocalVerificationResultRepository


@pytest.fixture
def repo(tmp_path, monkeypatch):
    stamps = (f"2024-06-11T10:00:{s:02d}+00:00" for s in itertools.count())
    monkeypatch.setattr(local_result_repository, "_now_iso", lambda: next(stamps))
    return LocalVerificationResultRepository(str(tmp_path / "verificaciones"))


@pytest.fixture
def results(pair_with_cosine):
    engine = FaceVerificationEngine()
    return {
        "match": engine.verify(*pair_with_cosine(1.0, 90, 90)),
        "no_match": engine.verify(*pair_with_cosine(0.1, 90, 90)),
    }


def test_save_writes_one_json_per_verification(repo, results):
    uuid_v = repo.save("proc-1", results["match"])

    record = repo.get(uuid_v)
    assert record["uuid_verificacion"] == uuid_v
    assert record["uuid_proceso"] == "proc-1"
    assert record["result"] == json.loads(json.dumps(results["match"].to_dict()))
    assert repo.record_path(uuid_v).endswith(f"{uuid_v}.json")


def test_unknown_uuid_returns_none(repo):
    assert repo.get("no-existe") is None
    assert repo.record_path("no-existe") is None
    assert repo.trace("no-existe") == []


def test_trace_lists_process_history_newest_first(repo, results):
    first = repo.save("proc-1", results["no_match"])
    second = repo.save("proc-1", results["match"])
    repo.save("proc-2", results["match"])

    items = repo.trace("proc-1")
    assert [i["uuid_verificacion"] for i in items] == [second, first]
    assert items[0]["passed"] is True
    assert items[1]["passed"] is False


def test_list_recent_paginates_newest_first(repo, results):
    ids = [repo.save(f"proc-{i}", results["match"]) for i in range(5)]

    assert [r["uuid_verificacion"] for r in repo.list_recent(limit=2)] == [ids[4], ids[3]]
    assert [r["uuid_verificacion"] for r in repo.list_recent(limit=2, offset=2)] == [ids[2], ids[1]]
    assert repo.list_recent(limit=10, offset=5) == []
    assert repo.count() == 5


def test_trace_index_files_are_not_records(repo, results):
    repo.save("proc-1", results["match"])
    assert repo.count() == 1


def test_stats(repo, results):
    repo.save("a", results["match"])
    repo.save("b", results["match"])
    repo.save("c", results["no_match"])

    stats = repo.stats()
    assert stats["total"] == 3
    assert stats["passed"] == 2
    assert stats["failed"] == 1
    expected = (2 * round(results["match"].score, 2) + round(results["no_match"].score, 2)) / 3
    assert stats["avgScore"] == pytest.approx(expected, abs=0.01)


def test_stats_of_empty_store(repo):
    assert repo.stats() == {"total": 0, "passed": 0, "failed": 0, "avgScore": 0.0}


def test_corrupt_record_is_skipped(repo, results, tmp_path):
    repo.save("a", results["match"])
    (tmp_path / "verificaciones" / "roto.json").write_text("{no es json", encoding="utf-8")
    assert repo.count() == 1
    assert repo.get("roto") is None
