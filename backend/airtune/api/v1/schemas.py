from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from airtune.core.user_settings import ENTRY_KEYS, SettingsEntry, UserSettings
from airtune.engine.optimizer.models import (
    ALTITUDE_SCORE,
    DURATION_SCORE,
    PARAMETER_KEYS,
    OptimizationConfig,
    Range,
)


class TargetRange(BaseModel):
    min: float | None = None
    max: float | None = None

    @model_validator(mode="after")
    def validate_range(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must be less than or equal to max")
        return self

    def to_range(self) -> Range:
        return Range.of(self.min, self.max)


class StabilityRange(TargetRange):
    @model_validator(mode="after")
    def validate_stability(self):
        if self.min is not None and self.max is not None and self.min >= self.max:
            raise ValueError("stability min must be less than stability max")
        return self


class ParameterBounds(BaseModel):
    min: float | None = None
    max: float | None = None


def _check_keys(keys, allowed, label: str) -> None:
    unknown = sorted(set(keys) - set(allowed))
    if unknown:
        raise ValueError(f"unknown {label}: {', '.join(unknown)}")


class AirframeOptimizationRequest(BaseModel):
    ork_path: str = Field(..., min_length=1)
    altitude: TargetRange = Field(default_factory=TargetRange)
    duration: TargetRange = Field(default_factory=TargetRange)
    stability: StabilityRange = Field(default_factory=StabilityRange)
    enabled: dict[str, bool] = Field(default_factory=dict)
    bounds: dict[str, ParameterBounds] = Field(default_factory=dict)
    algorithm: Literal["nelder_mead", "grid"] = "nelder_mead"
    save_path: str | None = None
    save_in_place: bool = False

    @model_validator(mode="after")
    def validate_keys(self):
        _check_keys(self.enabled, ENTRY_KEYS, "enabled keys")
        _check_keys(self.bounds, PARAMETER_KEYS, "parameter keys")
        if self.save_path and self.save_in_place:
            raise ValueError("save_path and save_in_place are mutually exclusive")
        return self

    def to_config(self) -> OptimizationConfig:
        return OptimizationConfig(
            ork_path=self.ork_path,
            altitude_range=self.altitude.to_range(),
            duration_range=self.duration.to_range(),
            stability_range=self.stability.to_range(),
            enabled=self.enabled,
            algorithm=self.algorithm,
        )

    def resolved_save_path(self) -> str | None:
        return self.ork_path if self.save_in_place else self.save_path

    @classmethod
    def from_user_settings(cls, settings: UserSettings, ork_path: str | None = None):
        entries = settings.entries
        return cls(
            ork_path=ork_path or settings.ork_path,
            altitude=TargetRange(min=entries[ALTITUDE_SCORE].min, max=entries[ALTITUDE_SCORE].max),
            duration=TargetRange(min=entries[DURATION_SCORE].min, max=entries[DURATION_SCORE].max),
            stability=StabilityRange(min=settings.stability_min, max=settings.stability_max),
            enabled={key: entry.enabled for key, entry in entries.items()},
            bounds={
                key: ParameterBounds(min=entries[key].min, max=entries[key].max)
                for key in PARAMETER_KEYS
            },
            algorithm=settings.algorithm,
        )


class SavedSettingsRunRequest(BaseModel):
    ork_path: str | None = None
    save_path: str | None = None
    save_in_place: bool = False

    @model_validator(mode="after")
    def validate_save_target(self):
        if self.save_path and self.save_in_place:
            raise ValueError("save_path and save_in_place are mutually exclusive")
        return self


class JobProgress(BaseModel):
    current: int = 0
    total: int = 1
    phase: int = 0
    total_phases: int = 1
    fraction: float = 0.0
    status: str | None = None
    interim: dict[str, Any] | None = None
    log_tail: list[str] = Field(default_factory=list)


class JobResponse(BaseModel):
    id: str
    type: Literal["airframe_optimize"]
    status: Literal["queued", "running", "completed", "cancelled", "failed"]
    params: dict[str, Any] = Field(default_factory=dict)
    progress: JobProgress | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    cancel_requested: bool = False
    created_at: datetime
    updated_at: datetime


class OptimizationSummary(BaseModel):
    job_id: str
    state: Literal["completed", "cancelled", "failed"]
    improved: bool
    best_values: dict[str, float] = Field(default_factory=dict)
    initial_values: dict[str, float] = Field(default_factory=dict)
    stage1_parachute: str = ""
    stage2_parachute: str = ""
    evaluations: int = 0
    combinations: int = 0
    saved_path: str | None = None
    save_warnings: list[str] = Field(default_factory=list)


class OrkUploadResponse(BaseModel):
    ork_id: str
    filename: str
    path: str


class OrkInspectRequest(BaseModel):
    path: str = Field(..., min_length=1)


class ParameterInfo(BaseModel):
    key: str
    display_name: str
    unit: str
    initial_value: float
    absolute_min: float
    absolute_max: float | None = None
    integer: bool = False


class ParachuteStageInfo(BaseModel):
    stage: int
    present: bool
    name: str


class OrkInspectResponse(BaseModel):
    path: str
    parameters: list[ParameterInfo]
    parachute_stages: list[ParachuteStageInfo]


class ParachutePresetsResponse(BaseModel):
    presets: list[str]


class SettingsEntryModel(BaseModel):
    enabled: bool = True
    min: float | None = None
    max: float | None = None


class UserSettingsModel(BaseModel):
    ork_path: str = ""
    stability_min: float | None = None
    stability_max: float | None = None
    algorithm: Literal["nelder_mead", "grid"] = "nelder_mead"
    entries: dict[str, SettingsEntryModel] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_entries(self):
        _check_keys(self.entries, ENTRY_KEYS, "settings keys")
        for key, entry in self.entries.items():
            if entry.min is not None and entry.max is not None and entry.min > entry.max:
                raise ValueError(f"{key}: min must be less than or equal to max")
        return self

    @classmethod
    def from_settings(cls, settings: UserSettings) -> "UserSettingsModel":
        return cls.model_validate(settings.to_dict())

    def to_settings(self) -> UserSettings:
        settings = UserSettings(
            ork_path=self.ork_path,
            stability_min=self.stability_min,
            stability_max=self.stability_max,
            algorithm=self.algorithm,
        )
        for key, entry in self.entries.items():
            settings.entries[key] = SettingsEntry(enabled=entry.enabled, min=entry.min, max=entry.max)
        return settings
