import csv
import json

from dichoptic_rdk.results import ResultsStore

FIELDS = ["block_number", "trial_number", "coherence", "staircase_snapshot"]


def _store(tmp_path):
    return ResultsStore("dichoptic_rdk", FIELDS, tmp_path, participant="P01", session="2")


def test_writes_are_grouped_into_rows(tmp_path):
    store = _store(tmp_path)
    store.write(5, 1, "block_number", 5)
    store.write(5, 1, "coherence", 0.2)
    store.write(5, 2, "coherence", 0.21)
    store.write(1, 1, "block_number", 1)

    assert store.row(5, 1) == {"block_number": 5, "coherence": 0.2}
    assert [row.get("coherence") for row in store.rows] == [None, 0.2, 0.21]


def test_save_writes_csv_and_json(tmp_path):
    store = _store(tmp_path)
    store.experiment_info["calibration_samples"] = {"setup": {"c_start": 100}}
    store.write(5, 1, "trial_number", 1)
    store.write(5, 1, "staircase_snapshot", {"Training_Binocular": 0.21})
    store.write(5, 1, "unlisted", "ignored")

    path = store.save()

    assert path == tmp_path / "dichoptic_rdk_P01_2.csv"
    with path.open(newline="", encoding="utf-8") as csv_file:
        rows = list(csv.DictReader(csv_file))
    assert rows[0]["trial_number"] == "1"
    assert json.loads(rows[0]["staircase_snapshot"]) == {"Training_Binocular": 0.21}
    assert "unlisted" not in rows[0]

    info = json.loads(path.with_suffix(".json").read_text(encoding="utf-8"))
    assert info["participant"] == "P01"
    assert info["rows"] == 1
    assert info["calibration_samples"]["setup"]["c_start"] == 100


def test_close_saves_once_and_drops_later_writes(tmp_path, caplog):
    store = _store(tmp_path)
    store.write(1, 1, "block_number", 1)
    store.close()
    store.write(1, 1, "coherence", 0.5)
    store.close()

    assert store.saved_to is not None and store.saved_to.exists()
    assert "coherence" not in store.row(1, 1)
    assert "dropping" in caplog.text
