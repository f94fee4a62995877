import json

from conftest import sample_result
from eq_coach.report import ReportView
from eq_coach.storage import RESULT_KEY, ResultStore


def test_save_then_load(tmp_path):
    store = ResultStore(tmp_path / "nested" / "result.json")
    result = sample_result()
    result.original_transcript = "你总是迟到，我注意到项目进度受到了影响。"
    store.save(result)

    loaded = store.load()
    assert loaded.to_dict() == result.to_dict()
    assert list(json.loads(store.path.read_text(encoding="utf-8"))) == [RESULT_KEY]


def test_save_overwrites_single_slot(tmp_path):
    store = ResultStore(tmp_path / "result.json")
    store.save(sample_result(diagnosis="第一次"))
    store.save(sample_result(diagnosis="第二次"))
    assert store.load().diagnosis == "第二次"


def test_missing_and_corrupt_files_load_as_none(tmp_path):
    store = ResultStore(tmp_path / "result.json")
    assert store.load() is None
    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() is None
    store.path.write_text(json.dumps({"other": 1}), encoding="utf-8")
    assert store.load() is None


def test_clear(tmp_path):
    store = ResultStore(tmp_path / "result.json")
    store.save(sample_result())
    store.clear()
    store.clear()
    assert store.load() is None


def test_report_reads_stored_result(tmp_path):
    store = ResultStore(tmp_path / "result.json")
    store.save(sample_result(diagnosis="来自存储"))
    assert ReportView.from_store(store).result.diagnosis == "来自存储"
