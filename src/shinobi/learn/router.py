"""Learning exercise endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from shinobi.auth.dependencies import get_current_user
from shinobi.db.models import User
from shinobi.dependencies import get_llm_client
from shinobi.learn.openrouter import OpenRouterClient
from shinobi.learn.schemas import VocabularyQuestion, VocabularyRequest, VocabularyResponse
from shinobi.learn.vocabulary import generate_vocabulary

router = APIRouter(prefix="/api/v1/learn", tags=["Learn"])


@router.post("/vocabulary", response_model=VocabularyResponse, response_model_by_alias=True)
async def vocabulary(
    body: VocabularyRequest,
    user: User = Depends(get_current_user),
    client: OpenRouterClient = Depends(get_llm_client),
) -> VocabularyResponse:
    """Multiple-choice vocabulary questions; falls back to a fixed bank."""
    questions, source = await generate_vocabulary(
        body.language_code, body.proficiency_level, body.count, client
    )
    return VocabularyResponse(
        questions=[VocabularyQuestion.model_validate(q) for q in questions],
        source=source,
    )
