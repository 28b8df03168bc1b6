"""Holiday data collaborator backed by a static YAML table."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Protocol, runtime_checkable

import yaml

from karin.calendar.business import coerce_date
from karin.core.errors import HolidayLoadError, InvalidDateError

logger = logging.getLogger(__name__)

_DEFAULT_HOLIDAYS_PATH = Path(__file__).resolve().parents[3] / "config" / "holidays.yml"


@runtime_checkable
class HolidaySource(Protocol):
    """Anything able to supply the holiday set for business-day arithmetic."""

    def load(self) -> frozenset[date]: ...


class StaticHolidaySource:
    """Fixed holiday set, mostly useful for tests and single-run scripts."""

    def __init__(self, holidays: frozenset[date] | set[date] | list[date] = frozenset()) -> None:
        self._holidays = frozenset(holidays)

    def load(self) -> frozenset[date]:
        return self._holidays


class YamlHolidaySource:
    """Loads national and regional holidays from a YAML file.

    Expected layout::

        national:
          - {date: 2025-01-01, name: Año Nuevo}
        regional:
          - {date: 2025-06-07, name: Asalto y Toma del Morro de Arica, regions: [XV]}

    The file is re-read on every ``load()`` so a sweep picks up edits made
    since the previous run.
    """

    def __init__(self, path: str | Path | None = None, region: str | None = None) -> None:
        self._path = Path(path) if path else _DEFAULT_HOLIDAYS_PATH
        self._region = region

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> frozenset[date]:
        try:
            with open(self._path) as fh:
                raw = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise HolidayLoadError(f"Cannot read holiday table {self._path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise HolidayLoadError(f"Holiday table {self._path} must be a mapping")

        holidays: set[date] = set()
        try:
            for entry in raw.get("national", []) or []:
                holidays.add(coerce_date(entry["date"]))
            for entry in raw.get("regional", []) or []:
                regions = entry.get("regions", [])
                if self._region is None or self._region in regions:
                    holidays.add(coerce_date(entry["date"]))
        except (KeyError, TypeError, InvalidDateError) as exc:
            raise HolidayLoadError(f"Malformed holiday entry in {self._path}: {exc}") from exc

        logger.debug("Loaded %d holidays from %s (region=%s)", len(holidays), self._path, self._region)
        return frozenset(holidays)
