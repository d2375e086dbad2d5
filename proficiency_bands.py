"""Proficiency band table.

Bands are a fixed partition of the unit interval used to label a competency
value qualitatively. The default table is built in; an alternative table can be
loaded from a JSON list of ``{"level", "name", "description", "min_score"}``
objects (``PROFICIENCY_BANDS_PATH``).
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence


class BandConfigError(ValueError):
    """Raised when a band table contains invalid data."""


@dataclass(frozen=True)
class ProficiencyBand:
    """Immutable representation of one band."""

    level: int
    name: str
    description: str
    min_score: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "name": self.name,
            "description": self.description,
        }


DEFAULT_BANDS: Sequence[Dict[str, Any]] = (
    {"level": 1, "name": "Early Learning", "description": "Needs guided help", "min_score": 0.0},
    {"level": 2, "name": "Developing", "description": "Getting the basics", "min_score": 0.2},
    {"level": 3, "name": "Functional", "description": "Can play most notes", "min_score": 0.4},
    {"level": 4, "name": "Independent", "description": "Smooth transitions", "min_score": 0.6},
    {"level": 5, "name": "Mastered", "description": "Automatic accuracy", "min_score": 0.8},
)


class BandRegistry:
    """Ordered band table with pure lookup by competency value."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._bands: List[ProficiencyBand] = []
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        """Reload the table from ``path`` (or the built-in defaults) and validate it."""

        if self.path is None:
            raw: Any = [dict(entry) for entry in DEFAULT_BANDS]
        else:
            if not self.path.exists():
                raise FileNotFoundError(f"Band table not found: {self.path}")
            with self.path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)

        if not isinstance(raw, list):
            raise BandConfigError("Band table must contain a JSON list")

        bands: List[ProficiencyBand] = []
        seen: set[int] = set()
        for idx, entry in enumerate(raw, start=1):
            if not isinstance(entry, dict):
                raise BandConfigError(f"Entry #{idx} must be a JSON object")
            if "name" not in entry or not str(entry["name"]).strip():
                raise BandConfigError(f"Entry #{idx} is missing a non-empty 'name'")

            try:
                level = int(entry.get("level", idx))
                min_score = float(entry["min_score"])
            except KeyError as exc:
                raise BandConfigError(f"Entry #{idx} is missing 'min_score'") from exc
            except (TypeError, ValueError) as exc:
                raise BandConfigError(f"Entry #{idx} has a non-numeric level or min_score") from exc

            if level in seen:
                raise BandConfigError(f"Duplicate band level detected: {level}")
            seen.add(level)
            if not 0.0 <= min_score < 1.0:
                raise BandConfigError(f"Band {level} min_score must be within [0, 1)")

            bands.append(
                ProficiencyBand(
                    level=level,
                    name=str(entry["name"]).strip(),
                    description=str(entry.get("description", "")).strip(),
                    min_score=min_score,
                )
            )

        if not bands:
            raise BandConfigError("Band table may not be empty")

        bands.sort(key=lambda band: band.min_score)
        if bands[0].min_score != 0.0:
            raise BandConfigError("The lowest band must start at 0.0")
        self._bands = bands

    # ------------------------------------------------------------------
    @property
    def bands(self) -> List[ProficiencyBand]:
        """Return a shallow copy of the bands, lowest first."""

        return list(self._bands)

    def band_for(self, competency: float) -> ProficiencyBand:
        """Return the band whose range contains ``competency``."""

        selected = self._bands[0]
        for band in self._bands:
            if competency >= band.min_score:
                selected = band
            else:
                break
        return selected

    def __iter__(self) -> Iterable[ProficiencyBand]:
        return iter(self._bands)


def load_bands() -> BandRegistry:
    """Build the registry, honouring ``PROFICIENCY_BANDS_PATH`` when set."""

    return BandRegistry(os.getenv("PROFICIENCY_BANDS_PATH") or None)


BANDS = BandRegistry()
"""Default band table used when no registry is passed explicitly."""
