from __future__ import annotations

import base64
import json
import zlib

import pytest

from pylivetiming.exceptions import DecodeError, MergeError
from pylivetiming.state.events import UpdateEvent
from pylivetiming.state.store import ReconciliationStore


def _encode(value: object) -> str:
    compressor = zlib.compressobj(wbits=-zlib.MAX_WBITS)
    data = compressor.compress(json.dumps(value).encode("utf-8")) + compressor.flush()
    return base64.b64encode(data).decode("ascii")


def _event(topic: str, payload: object, timestamp: str = "2024-03-02T15:00:00.000Z") -> UpdateEvent:
    return UpdateEvent(topic=topic, payload=payload, timestamp=timestamp)


def test_first_update_is_taken_as_is() -> None:
    store = ReconciliationStore()

    name, value = store.apply(_event("WeatherData", {"AirTemp": "20.0"}))

    assert name == "WeatherData"
    assert value == {"AirTemp": "20.0"}
    assert store.get("WeatherData") == {"AirTemp": "20.0"}


def test_updates_merge_into_stored_value() -> None:
    store = ReconciliationStore()
    store.seed({"WeatherData": {"AirTemp": "20.0", "TrackTemp": "31.0"}})

    store.apply(_event("WeatherData", {"AirTemp": "22.0"}))

    assert store.get("WeatherData") == {"AirTemp": "22.0", "TrackTemp": "31.0"}


def test_seed_replaces_instead_of_merging() -> None:
    store = ReconciliationStore()
    store.seed({"SessionInfo": {"Name": "Race", "Path": "2024/race/"}})

    seeded = store.seed({"SessionInfo": {"Name": "Qualifying"}})

    assert seeded == {"SessionInfo": {"Name": "Qualifying"}}
    assert store.get("SessionInfo") == {"Name": "Qualifying"}


def test_seed_decodes_compressed_topics_under_normalized_name() -> None:
    store = ReconciliationStore()
    car_data = {"Entries": [{"Utc": "2024-03-02T15:00:00Z", "Cars": {}}]}

    seeded = store.seed({"CarData.z": _encode(car_data), "WeatherData": {"AirTemp": "20"}})

    assert seeded == {"CarData": car_data, "WeatherData": {"AirTemp": "20"}}
    assert store.topics == ("CarData", "WeatherData")
    assert "CarData.z" in store
    assert store.get("CarData.z") == car_data


def test_seed_with_bad_payload_changes_nothing() -> None:
    store = ReconciliationStore()
    store.seed({"WeatherData": {"AirTemp": "20"}})

    with pytest.raises(DecodeError):
        store.seed({"WeatherData": {"AirTemp": "99"}, "Position.z": "%%%"})

    assert store.get("WeatherData") == {"AirTemp": "20"}
    assert "Position" not in store


def test_compressed_update_replaces_without_merging() -> None:
    store = ReconciliationStore()
    store.seed({"CarData.z": _encode({"Entries": [1, 2], "Extra": True})})

    name, value = store.apply(_event("CarData.z", _encode({"Entries": [3]})))

    assert name == "CarData"
    assert value == {"Entries": [3]}


def test_compressed_topic_with_structured_payload_merges_under_raw_name() -> None:
    store = ReconciliationStore()

    store.apply(_event("CarData.z", {"Entries": {"0": {"Utc": "a"}}}))
    name, value = store.apply(_event("CarData.z", {"Entries": {"1": {"Utc": "b"}}}))

    assert name == "CarData.z"
    assert value == {"Entries": {"0": {"Utc": "a"}, "1": {"Utc": "b"}}}
    assert store.get("CarData.z") == value


def test_failed_decode_keeps_previous_value() -> None:
    store = ReconciliationStore()
    store.seed({"Position.z": _encode({"Position": []})})

    with pytest.raises(DecodeError):
        store.apply(_event("Position.z", "definitely not base64!"))

    assert store.get("Position") == {"Position": []}


def test_failed_merge_is_atomic_per_topic() -> None:
    store = ReconciliationStore()
    store.seed({"TimingData": {"Lines": [{"Gap": "+1.0"}], "Status": "ok"}})

    with pytest.raises(MergeError):
        store.apply(_event("TimingData", {"Status": "changed", "Lines": {"-1": {"Gap": "x"}}}))

    assert store.get("TimingData") == {"Lines": [{"Gap": "+1.0"}], "Status": "ok"}


def test_update_to_one_topic_leaves_others_alone() -> None:
    store = ReconciliationStore()
    store.seed({"WeatherData": {"AirTemp": "20"}, "TrackStatus": {"Status": "1"}})

    store.apply(_event("TrackStatus", {"Status": "2", "Message": "Yellow"}))

    assert store.get("WeatherData") == {"AirTemp": "20"}


def test_reads_are_copies() -> None:
    store = ReconciliationStore()
    _, applied = store.apply(_event("WeatherData", {"AirTemp": "20"}))

    applied["AirTemp"] = "mutated"
    store.get("WeatherData")["AirTemp"] = "mutated"
    store.snapshot()["WeatherData"]["AirTemp"] = "mutated"

    assert store.get("WeatherData") == {"AirTemp": "20"}


def test_snapshot_is_read_only() -> None:
    store = ReconciliationStore()
    store.seed({"Heartbeat": {"Utc": "2024-03-02T15:00:00Z"}})

    snapshot = store.snapshot()

    with pytest.raises(TypeError):
        snapshot["Heartbeat"] = {}  # type: ignore[index]
    assert dict(snapshot) == {"Heartbeat": {"Utc": "2024-03-02T15:00:00Z"}}


def test_get_returns_default_for_unknown_topic() -> None:
    store = ReconciliationStore()

    assert store.get("LapCount") is None
    assert store.get("LapCount", {}) == {}
    assert len(store) == 0


def test_stale_marking_keeps_values_until_refreshed() -> None:
    store = ReconciliationStore()
    store.seed({"WeatherData": {"AirTemp": "20"}, "LapCount": {"CurrentLap": 3}})

    store.mark_stale()

    assert store.stale_topics == frozenset({"WeatherData", "LapCount"})
    assert store.get("WeatherData") == {"AirTemp": "20"}

    store.seed({"WeatherData": {"AirTemp": "18"}})
    store.apply(_event("LapCount", {"CurrentLap": 4}))

    assert store.stale_topics == frozenset()
    assert store.is_stale("WeatherData") is False


def test_clear_drops_everything() -> None:
    store = ReconciliationStore()
    store.seed({"WeatherData": {"AirTemp": "20"}})
    store.mark_stale()

    store.clear()

    assert list(store) == []
    assert store.stale_topics == frozenset()


def test_decoded_entry_wins_over_structured_raw_entry() -> None:
    store = ReconciliationStore()
    store.apply(_event("CarData.z", {"Entries": {"0": {"Utc": "old"}}}))

    store.apply(_event("CarData.z", _encode({"Entries": [{"Utc": "new"}]})))

    assert store.topics == ("CarData.z", "CarData")
    assert store.get("CarData.z") == {"Entries": [{"Utc": "new"}]}
    assert store.get("CarData") == {"Entries": [{"Utc": "new"}]}
    assert store.snapshot()["CarData.z"] == {"Entries": {"0": {"Utc": "old"}}}
