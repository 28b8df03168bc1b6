"""Tests for the holiday data collaborator."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
import yaml

from karin.calendar.holidays import HolidaySource, StaticHolidaySource, YamlHolidaySource
from karin.core.errors import HolidayLoadError


@pytest.fixture()
def holidays_path(tmp_path: Path) -> Path:
    data = {
        "national": [
            {"date": "2025-09-18", "name": "Independencia Nacional"},
            {"date": "2025-09-19", "name": "Glorias del Ejército"},
        ],
        "regional": [
            {"date": "2025-06-07", "name": "Morro de Arica", "regions": ["XV"]},
            {"date": "2025-08-20", "name": "Prócer de la Independencia", "regions": ["XVI"]},
        ],
    }
    path = tmp_path / "holidays.yml"
    path.write_text(yaml.dump(data, allow_unicode=True))
    return path


class TestYamlHolidaySource:
    def test_without_region_includes_every_regional_holiday(self, holidays_path: Path) -> None:
        holidays = YamlHolidaySource(holidays_path).load()
        assert holidays == frozenset(
            {date(2025, 9, 18), date(2025, 9, 19), date(2025, 6, 7), date(2025, 8, 20)}
        )

    def test_region_filters_regional_holidays(self, holidays_path: Path) -> None:
        holidays = YamlHolidaySource(holidays_path, region="XV").load()
        assert date(2025, 6, 7) in holidays
        assert date(2025, 8, 20) not in holidays
        assert date(2025, 9, 18) in holidays

    def test_file_is_reread_on_every_load(self, holidays_path: Path) -> None:
        source = YamlHolidaySource(holidays_path)
        assert len(source.load()) == 4
        holidays_path.write_text(yaml.dump({"national": [{"date": "2025-01-01"}]}))
        assert source.load() == frozenset({date(2025, 1, 1)})

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(HolidayLoadError):
            YamlHolidaySource(tmp_path / "absent.yml").load()

    def test_malformed_entry_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text(yaml.dump({"national": [{"name": "no date"}]}))
        with pytest.raises(HolidayLoadError):
            YamlHolidaySource(path).load()

    def test_unparseable_date_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text(yaml.dump({"national": [{"date": "18 de septiembre"}]}))
        with pytest.raises(HolidayLoadError):
            YamlHolidaySource(path).load()

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yml"
        path.write_text("- 2025-01-01\n")
        with pytest.raises(HolidayLoadError):
            YamlHolidaySource(path).load()

    def test_default_table_loads(self) -> None:
        holidays = YamlHolidaySource().load()
        assert date(2025, 9, 18) in holidays
        assert date(2026, 12, 25) in holidays


class TestStaticHolidaySource:
    def test_returns_given_set(self) -> None:
        source = StaticHolidaySource([date(2025, 1, 1)])
        assert source.load() == frozenset({date(2025, 1, 1)})

    def test_satisfies_protocol(self) -> None:
        assert isinstance(StaticHolidaySource(), HolidaySource)
        assert isinstance(YamlHolidaySource(), HolidaySource)
