"""
Tests for configuration loading.
"""

import pytest

from medavail.config import AppConfig, DefaultsConfig


def test_defaults_build_standard_working_hours():
    hours = AppConfig().to_working_hours()

    assert (hours.start, hours.end, hours.slot_duration_minutes) == (9, 17, 30)
    assert hours.excluded_weekdays == frozenset({5, 6})
    assert hours.timezone == "UTC"


def test_load_from_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "client_id: abc\n"
        "tenant_id: tenant\n"
        "backend_url: https://api.example.test\n"
        "timezone: Europe/Berlin\n"
        "defaults:\n"
        "  start_hour: 8\n"
        "  end_hour: 14\n"
        "  slot_duration_minutes: 20\n"
        "  excluded_weekdays: [6, 6, 5]\n",
        encoding="utf-8",
    )

    config = AppConfig.load_from_yaml(config_path)

    assert config.get_authority_url() == "https://login.microsoftonline.com/tenant"
    assert config.defaults.excluded_weekdays == [6, 5]
    hours = config.to_working_hours()
    assert hours.timezone == "Europe/Berlin"
    assert hours.slot_duration_minutes == 20


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_yaml(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("defaults: [unclosed", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML"):
        AppConfig.load_from_yaml(config_path)


def test_non_mapping_root(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping at the root"):
        AppConfig.load_from_yaml(config_path)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"start_hour": 25},
        {"start_hour": 17, "end_hour": 9},
        {"slot_duration_minutes": 0},
        {"slot_duration_minutes": 40},
        {"excluded_weekdays": [7]},
        {"max_range_days": 0},
    ],
)
def test_invalid_defaults(kwargs):
    with pytest.raises(ValueError):
        DefaultsConfig(**kwargs)
