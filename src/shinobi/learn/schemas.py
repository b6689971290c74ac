"""Pydantic schemas for learning endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class VocabularyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    language_code: str = Field(..., min_length=2, max_length=8, alias="languageCode")
    proficiency_level: str = Field("BEGINNER", max_length=16, alias="proficiencyLevel")
    count: int = Field(10, ge=1, le=20)


class VocabularyQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    question: str
    options: list[str]
    correct_answer_index: int = Field(..., alias="correctAnswerIndex")
    explanation: str


class VocabularyResponse(BaseModel):
    questions: list[VocabularyQuestion]
    source: str
