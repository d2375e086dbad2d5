import json

import pytest

from proficiency_bands import BANDS, BandConfigError, BandRegistry, load_bands


@pytest.mark.parametrize(
    "competency, name",
    [
        (0.0, "Early Learning"),
        (0.1999, "Early Learning"),
        (0.2, "Developing"),
        (0.39, "Developing"),
        (0.4, "Functional"),
        (0.6, "Independent"),
        (0.79, "Independent"),
        (0.8, "Mastered"),
        (1.0, "Mastered"),
    ],
)
def test_default_band_boundaries(competency, name):
    assert BANDS.band_for(competency).name == name


def test_default_bands_are_ordered_with_descriptions():
    bands = BANDS.bands
    assert [band.level for band in bands] == [1, 2, 3, 4, 5]
    assert bands[0].as_dict() == {"level": 1, "name": "Early Learning", "description": "Needs guided help"}
    assert bands[4].description == "Automatic accuracy"


def test_custom_table_is_loaded_and_sorted(tmp_path):
    path = tmp_path / "bands.json"
    path.write_text(
        json.dumps(
            [
                {"level": 2, "name": "Solid", "description": "", "min_score": 0.5},
                {"level": 1, "name": "Starting", "description": "", "min_score": 0.0},
            ]
        ),
        encoding="utf-8",
    )
    registry = BandRegistry(path)
    assert [band.name for band in registry] == ["Starting", "Solid"]
    assert registry.band_for(0.49).name == "Starting"
    assert registry.band_for(0.5).name == "Solid"


@pytest.mark.parametrize(
    "payload",
    [
        {"level": 1},
        [],
        [{"level": 1, "name": "A", "min_score": 0.1}],
        [{"level": 1, "name": "A", "min_score": 0.0}, {"level": 1, "name": "B", "min_score": 0.5}],
        [{"level": 1, "name": "A", "min_score": 1.2}],
        [{"level": 1, "name": "", "min_score": 0.0}],
        [{"level": 1, "name": "A"}],
        [{"level": 1, "name": "A", "min_score": "high"}],
    ],
)
def test_invalid_tables_are_rejected(tmp_path, payload):
    path = tmp_path / "bands.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(BandConfigError):
        BandRegistry(path)


def test_missing_table_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        BandRegistry(tmp_path / "missing.json")


def test_load_bands_honours_environment(monkeypatch, tmp_path):
    path = tmp_path / "bands.json"
    path.write_text(json.dumps([{"level": 1, "name": "Only", "min_score": 0.0}]), encoding="utf-8")
    monkeypatch.setenv("PROFICIENCY_BANDS_PATH", str(path))
    assert [band.name for band in load_bands()] == ["Only"]
    monkeypatch.delenv("PROFICIENCY_BANDS_PATH")
    assert len(load_bands().bands) == 5
