from __future__ import annotations

import json

from releaseagent.state import DayState, ReleaseState, VersionState, load_state, save_state


def test_load_missing_state(tmp_path) -> None:
    assert load_state(tmp_path / "missing.json") is None


def test_save_and_load(tmp_path) -> None:
    state = ReleaseState(input_checksum=1234)
    state.day.release_issue = 42
    state.versions["1.22.10-1"] = VersionState(update_pr=7, github_tag="v1.22.10-1")

    path = tmp_path / "nested" / "state.json"
    save_state(state, path)

    loaded = load_state(path)
    assert loaded == state
    assert loaded.versions["1.22.10-1"].github_tag == "v1.22.10-1"
    # no temp files left behind
    assert [p.name for p in path.parent.iterdir()] == ["state.json"]


def test_saved_state_is_readable_json(tmp_path) -> None:
    path = tmp_path / "state.json"
    save_state(ReleaseState(input_checksum=5), path)

    data = json.loads(path.read_text())
    assert data["input_checksum"] == 5
    assert data["day"]["announcement_written"] is False
    assert data["versions"] == {}


def test_save_overwrites(tmp_path) -> None:
    path = tmp_path / "state.json"
    save_state(ReleaseState(input_checksum=1), path)
    save_state(ReleaseState(input_checksum=2, day=DayState(mar_version_checked=True)), path)

    loaded = load_state(path)
    assert loaded.input_checksum == 2
    assert loaded.day.mar_version_checked


def test_older_state_files_get_defaults(tmp_path) -> None:
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"input_checksum": 9, "versions": {"1.23.0-1": {"commit": "abc"}}}))

    loaded = load_state(path)
    assert loaded.day == DayState()
    assert loaded.versions["1.23.0-1"].commit == "abc"
    assert loaded.versions["1.23.0-1"].update_pr == 0
