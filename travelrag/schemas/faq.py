"""FAQ answering schemas"""
from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class FaqTier(str, Enum):
    """How an answer was produced"""
    DIRECT = "direct"
    RAG = "rag"
    NO_MATCH = "no_match"


class ChatTurn(BaseModel):
    """One prior turn of the customer conversation"""
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=4000)


class FaqReference(BaseModel):
    """A knowledge entry surfaced with an answer (source or suggestion)"""
    document_id: str
    question: str
    similarity: float


class FaqAnswer(BaseModel):
    answer: str
    tier: FaqTier
    sources: List[FaqReference] = Field(default_factory=list, description="Entries the answer is grounded on")
    suggestions: List[FaqReference] = Field(default_factory=list, description="Related questions for no_match")
    top_similarity: Optional[float] = None

    @property
    def no_match(self) -> bool:
        return self.tier == FaqTier.NO_MATCH
