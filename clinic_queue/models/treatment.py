"""Per-patient treatment profile derived from the last 28 days of sessions."""

from pydantic import AliasChoices, BaseModel, Field, field_validator


NOTE_UNAVAILABLE = "Data temporarily unavailable"
NOTE_FORMAT_ERROR = "Data format error"
NOTE_NOT_FOUND = "No treatment data on record"


class TreatmentProfile(BaseModel):
    """Treatment history signal for one patient.

    ``available`` is False when the profile is a safe default standing in for
    a lookup that failed or returned nothing usable; ``emergency_note`` then
    says why, so "no emergency" can be told apart from "no data".
    """

    treatment_count_28_days: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("treatment_count_28_days", "treatmentCount28Days"),
    )
    is_emergency: bool = Field(
        default=False, validation_alias=AliasChoices("is_emergency", "isEmergency")
    )
    emergency_priority: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("emergency_priority", "emergencyPriority"),
    )
    emergency_note: str = Field(
        default="Normal", validation_alias=AliasChoices("emergency_note", "emergencyNote")
    )
    available: bool = True

    class Config:
        frozen = True
        populate_by_name = True

    @field_validator("treatment_count_28_days", "emergency_priority", mode="before")
    @classmethod
    def _none_as_zero(cls, value):
        return 0 if value is None else value

    @field_validator("is_emergency", mode="before")
    @classmethod
    def _none_as_false(cls, value):
        return False if value is None else value

    @field_validator("emergency_note", mode="before")
    @classmethod
    def _blank_note_as_normal(cls, value):
        return value or "Normal"

    @classmethod
    def safe_default(cls, note: str = NOTE_UNAVAILABLE) -> "TreatmentProfile":
        """Profile used when the real one cannot be obtained."""
        return cls(
            treatment_count_28_days=0,
            is_emergency=False,
            emergency_priority=0,
            emergency_note=note,
            available=False,
        )


# Profile used for entries with no patient identity at all
EMPTY_PROFILE = TreatmentProfile(emergency_note="Normal")
