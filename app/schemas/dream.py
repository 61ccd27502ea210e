from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID


class DreamInterpretRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dream_text: str = Field(..., alias="dreamText", min_length=10, max_length=5000)
    # Tipo desconhecido é aceito e cobrado como "basic"
    interpretation_type: Optional[str] = Field("basic", alias="interpretationType", max_length=32)
    language: str = Field("en", min_length=2, max_length=8)

    @field_validator("dream_text")
    @classmethod
    def validate_dream_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("dreamText cannot be blank")
        return v.strip()


class DreamResponse(BaseModel):
    id: UUID
    dream_text: str
    interpretation_type: str
    language: str
    interpretation: Optional[Dict[str, Any]] = None
    charged_from: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TherapistExportResponse(BaseModel):
    dream_id: UUID
    generated_at: datetime
    client_display_name: Optional[str] = None
    dream_date: datetime
    dream_text: str
    interpretation_type: str
    main_themes: list
    emotional_tone: Optional[str] = None
    symbols: list
    personal_insight: Optional[str] = None
    guidance: Optional[str] = None
    disclaimer: str
