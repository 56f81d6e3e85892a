"""Scoring settings: parsing, defaults and the season/global fallback chain."""

import json
from pathlib import Path
from typing import Any, Dict, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import InvalidSettingsError

# Bundled default settings live next to the package under ``data``.
DATA_DIR = Path(__file__).resolve().parent / "data"

SETTINGS_SOURCES = ("season", "global", "default")

Seconds = Union[StrictInt, StrictFloat]
PerfClass = Literal["A", "B", "C", "D"]


class _Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # A null value means the key is absent
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class HandicapRule(_Document):
    """A time adjustment in seconds that only applies when enabled."""

    enabled: StrictBool = False
    seconds: Seconds = 0

    @property
    def contribution(self) -> float:
        return self.seconds if self.enabled else 0


class AgeBracket(_Document):
    min_age: StrictInt
    max_age: StrictInt
    seconds: Seconds = 0
    enabled: StrictBool = False

    @model_validator(mode="after")
    def check_age_order(self) -> "AgeBracket":
        if self.min_age > self.max_age:
            raise ValueError("min_age is above max_age")
        return self

    def matches(self, age: int) -> bool:
        return self.enabled and self.min_age <= age <= self.max_age


class TimeTrialBonuses(_Document):
    aero_bars: HandicapRule = Field(default_factory=HandicapRule)
    tt_equipment: HandicapRule = Field(default_factory=HandicapRule)


class GenderRules(_Document):
    female: HandicapRule = Field(default_factory=HandicapRule)


class PerfClassRules(_Document):
    hobby: HandicapRule = Field(default_factory=HandicapRule)


class HandicapSettings(_Document):
    gender: GenderRules = Field(default_factory=GenderRules)
    perf_class: PerfClassRules = Field(default_factory=PerfClassRules)
    age_brackets: Tuple[AgeBracket, ...] = ()


class Settings(_Document):
    """Parsed settings for one season.

    A rule that is absent from the source document is a disabled
    ``HandicapRule``; lists and maps that are absent are empty.
    """

    version: StrictInt = 0
    winner_points: Tuple[Seconds, ...] = ()
    handicap_base_points: Dict[PerfClass, Seconds] = Field(default_factory=dict)
    finisher_group_penalty: Seconds = 1
    drop_scores: StrictInt = Field(0, ge=0)
    closed_seasons: Tuple[StrictInt, ...] = ()
    time_trial_bonuses: TimeTrialBonuses = Field(default_factory=TimeTrialBonuses)
    handicap_settings: HandicapSettings = Field(default_factory=HandicapSettings)

    @field_validator("finisher_group_penalty")
    @classmethod
    def check_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        """Parse a settings document.

        Args:
            data: The JSON document as stored per season or globally.

        Raises:
            InvalidSettingsError: if a present value has the wrong type or is
                out of range.
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise InvalidSettingsError("settings must be an object")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidSettingsError(f"invalid settings: {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @property
    def aero_bars(self) -> HandicapRule:
        return self.time_trial_bonuses.aero_bars

    @property
    def tt_equipment(self) -> HandicapRule:
        return self.time_trial_bonuses.tt_equipment

    @property
    def female(self) -> HandicapRule:
        return self.handicap_settings.gender.female

    @property
    def hobby(self) -> HandicapRule:
        return self.handicap_settings.perf_class.hobby

    @property
    def age_brackets(self) -> Tuple[AgeBracket, ...]:
        return self.handicap_settings.age_brackets

    def winner_bonus(self, rank: Optional[int]) -> float:
        """Bonus for a top placing; zero when the table has no entry for it."""
        if not rank or rank > len(self.winner_points):
            return 0
        return self.winner_points[rank - 1]


# Load the bundled default once at import.
with (DATA_DIR / "settings.json").open() as f:
    DEFAULT_SETTINGS = Settings.from_dict(json.load(f))


def resolve_settings_with_source(
    season_settings: Optional[Dict[str, Any]] = None,
    global_settings: Optional[Dict[str, Any]] = None,
) -> Tuple[Settings, str]:
    """Pick the first present settings document: season, then global, then default.

    Returns:
        The parsed settings and the name of the source used.
    """
    for name, document in zip(SETTINGS_SOURCES, (season_settings, global_settings)):
        if document is not None:
            return Settings.from_dict(document), name
    return DEFAULT_SETTINGS, "default"


def resolve_settings(
    season_settings: Optional[Dict[str, Any]] = None,
    global_settings: Optional[Dict[str, Any]] = None,
) -> Settings:
    return resolve_settings_with_source(season_settings, global_settings)[0]


def is_season_closed(settings: Settings, season: int) -> bool:
    return int(season) in settings.closed_seasons
