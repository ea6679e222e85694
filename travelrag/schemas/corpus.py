"""Corpus and catalog schemas shared by the retrieval layer"""
import json
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class SourceType(str, Enum):
    """Which corpus a document belongs to"""
    CORRESPONDENCE = "correspondence"
    PAST_ITINERARY = "past_itinerary"
    KNOWLEDGE_ENTRY = "knowledge_entry"
    TOUR = "tour"


class CorpusDocument(BaseModel):
    """
    A searchable text blob keyed by a stable source id.

    Documents without an embedding are invisible to vector search until
    the backfill job computes one.
    """
    id: str = Field(..., description="Stable source id")
    source_type: SourceType = Field(..., description="Corpus the document belongs to")
    text: str = Field(..., description="Text that is embedded and scanned for keywords")
    embedding: Optional[List[float]] = Field(None, description="Embedding vector, null until computed")
    category: Optional[str] = Field(None, description="Assigned category label (knowledge entries)")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Source-specific fields")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        """Store rows may use integer primary keys"""
        return str(v) if v is not None else v

    @field_validator("embedding", mode="before")
    @classmethod
    def parse_vector(cls, v):
        """pgvector columns come back from PostgREST as '[0.1,0.2,...]' strings"""
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def none_to_dict(cls, v):
        return v or {}


class CatalogEntity(BaseModel):
    """Canonical place in the catalog (read-only here)"""
    id: int = Field(..., description="Catalog entity id")
    primary_name: str = Field(..., description="Primary (English) name")
    local_name: Optional[str] = Field(None, description="Local-language name")
    categories: List[str] = Field(default_factory=list, description="Category tags")
    region: Optional[str] = Field(None, description="Region / city")
    description: Optional[str] = Field(None, description="Short description")

    @field_validator("categories", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []


class SearchHit(BaseModel):
    """One vector search result"""
    document_id: str = Field(..., description="Matched document id")
    source_type: SourceType = Field(..., description="Corpus of the matched document")
    similarity: float = Field(..., ge=0.0, le=1.0, description="1 - cosine distance, clamped to [0, 1]")
    text: str = Field("", description="Document text (or snippet)")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("document_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v

    @field_validator("similarity", mode="before")
    @classmethod
    def clamp_similarity(cls, v):
        """Float error can push cosine similarity slightly outside [0, 1]"""
        value = float(v)
        return max(0.0, min(1.0, value))

    @field_validator("text", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or ""

    @field_validator("metadata", mode="before")
    @classmethod
    def none_to_dict(cls, v):
        return v or {}


class FuzzyCatalogHit(BaseModel):
    """Best trigram match for one query name"""
    query_name: str
    entity: CatalogEntity
    similarity: float


class NeighborPair(BaseModel):
    """Two documents and their cosine similarity"""
    left_id: str
    right_id: str
    similarity: float

    @field_validator("left_id", "right_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)
