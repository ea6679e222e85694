"""
travelrag API - retrieval-grounded drafting for a travel agency

- Itinerary drafts grounded in past correspondence, past itineraries and the place catalog
- Place name resolution against the catalog (exact / partial / fuzzy)
- FAQ answering from the knowledge base
- Batch jobs: duplicate clustering, category assignment, embedding backfill
"""
import logging
from collections import Counter

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .agents.draft_pipeline import DraftPipeline, get_draft_pipeline
from .agents.faq_agent import FaqAgent, get_faq_agent
from .analytics.categories import CategoryClassifier
from .analytics.duplicates import DuplicateDetector
from .config import settings
from .middleware.timeout import CustomTimeoutMiddleware
from .rag.place_matcher import PlaceMatcher
from .rag.retriever import CorpusRetriever, get_retriever
from .schemas.faq import FaqAnswer
from .schemas.request import (
    BackfillRequest,
    CategorizeRequest,
    DraftRequest,
    DuplicateScanRequest,
    FaqRequest,
    PlaceMatchRequest,
)
from .schemas.response import (
    BackfillResponse,
    CategorizeResponse,
    DraftResponse,
    DuplicateScanResponse,
    ErrorResponse,
    PlaceMatchResponse,
)

handlers = [logging.StreamHandler()]
if settings.log_file:
    handlers.append(logging.FileHandler(settings.log_file, mode='a'))

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=handlers
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="travelrag API",
    description="Retrieval-grounded itinerary drafts, place matching and FAQ answering",
    version="1.0.0"
)

# 1. Request timeout
app.add_middleware(CustomTimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)

# 2. CORS middleware for the back-office frontend
allowed_origins_list = [origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

ERROR_RESPONSES = {
    422: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@app.exception_handler(PydanticValidationError)
async def validation_error_handler(request: Request, exc: PydanticValidationError):
    """Validation errors raised while handling a request (not request parsing)"""
    logger.warning(f"Validation error on {request.url.path}: {exc.error_count()} errors")
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="ValidationError",
            message="Invalid input or model output format",
            details={"errors": exc.errors(include_url=False, include_context=False)}
        ).model_dump()
    )


def internal_error(message: str, error: Exception) -> HTTPException:
    logger.exception(f"{message}: {error}")
    return HTTPException(
        status_code=500,
        detail={
            "error": "InternalServerError",
            "message": message,
            "details": {"original_error": str(error)}
        }
    )


def get_place_matcher(retriever: CorpusRetriever = Depends(get_retriever)) -> PlaceMatcher:
    return PlaceMatcher(retriever.store)


def get_duplicate_detector(retriever: CorpusRetriever = Depends(get_retriever)) -> DuplicateDetector:
    return DuplicateDetector(retriever.store)


def get_category_classifier(retriever: CorpusRetriever = Depends(get_retriever)) -> CategoryClassifier:
    return CategoryClassifier(retriever)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "environment": settings.env, "store_backend": settings.store_backend}


@app.post("/drafts", response_model=DraftResponse, responses=ERROR_RESPONSES)
async def create_draft(request: DraftRequest, pipeline: DraftPipeline = Depends(get_draft_pipeline)):
    """
    Generate an itinerary draft for a trip profile

    Returns:
        DraftResponse; generated=False with abort_reason when the run
        could not be grounded or the completion provider was unavailable
    """
    try:
        outcome = await pipeline.run(request.profile, request.config)
    except PydanticValidationError:
        raise
    except Exception as e:
        raise internal_error("Draft generation failed unexpectedly", e)

    run = outcome.run if request.include_run else None
    if outcome.draft is None:
        return DraftResponse(
            generated=False,
            abort_reason=outcome.run.abort_reason,
            search_query=outcome.run.search_query or None,
            run=run,
            message="Not enough grounding to generate a draft"
        )

    draft = outcome.draft
    tbd = sum(1 for item in draft.items if item.is_tbd)
    return DraftResponse(
        generated=True,
        items=draft.items,
        sources=draft.sources,
        search_query=draft.search_query,
        run=run,
        message=f"Generated {len(draft.items)} places ({tbd} to be decided)"
    )


@app.post("/places/match", response_model=PlaceMatchResponse, responses=ERROR_RESPONSES)
async def match_places(request: PlaceMatchRequest, matcher: PlaceMatcher = Depends(get_place_matcher)):
    """Resolve free-text place names to catalog entities, preserving input order"""
    try:
        results = await matcher.match_places(request.places, request.fuzzy_threshold, request.region)
    except Exception as e:
        raise internal_error("Place matching failed unexpectedly", e)

    counts = Counter(result.tier.value for result in results)
    return PlaceMatchResponse(results=results, tier_counts=dict(counts))


@app.post("/faq/answer", response_model=FaqAnswer, responses=ERROR_RESPONSES)
async def answer_faq(request: FaqRequest, agent: FaqAgent = Depends(get_faq_agent)):
    """Answer a customer question from the knowledge base"""
    try:
        return await agent.answer(request.question, request.history)
    except Exception as e:
        raise internal_error("FAQ answering failed unexpectedly", e)


@app.post("/analytics/duplicates", response_model=DuplicateScanResponse, responses=ERROR_RESPONSES)
async def find_duplicates(
    request: DuplicateScanRequest,
    detector: DuplicateDetector = Depends(get_duplicate_detector)
):
    """Cluster near-duplicate documents"""
    try:
        groups = await detector.find_groups(request.source_types, request.threshold, request.top_n)
    except Exception as e:
        raise internal_error("Duplicate scan failed", e)

    return DuplicateScanResponse(
        groups=groups,
        total_documents=sum(len(group.member_ids) for group in groups)
    )


@app.post("/analytics/categorize", response_model=CategorizeResponse, responses=ERROR_RESPONSES)
async def categorize(
    request: CategorizeRequest,
    classifier: CategoryClassifier = Depends(get_category_classifier)
):
    """Assign categories to unlabelled documents"""
    try:
        summary = await classifier.classify(request.source_types)
    except Exception as e:
        raise internal_error("Categorization failed", e)
    return CategorizeResponse(summary=summary)


@app.post("/corpus/backfill", response_model=BackfillResponse, responses=ERROR_RESPONSES)
async def backfill(request: BackfillRequest, retriever: CorpusRetriever = Depends(get_retriever)):
    """Embed documents stored without an embedding"""
    try:
        summary = await retriever.backfill_embeddings(request.source_types, request.batch_size)
    except Exception as e:
        raise internal_error("Embedding backfill failed", e)

    message = "Backfill already running" if summary.skipped else f"Embedded {summary.embedded} documents"
    return BackfillResponse(summary=summary, message=message)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
