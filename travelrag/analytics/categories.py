"""Category assignment for unlabelled documents by nearest category centroid"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from ..config import settings
from ..rag.retriever import CorpusRetriever, get_retriever
from ..schemas.agent import CategoryLabelLLM
from ..schemas.analytics import AssignmentMethod, CategorizationSummary, CategoryAssignment
from ..schemas.corpus import CorpusDocument, SourceType
from ..tools.completion import CompletionClient, get_completion_client
from ..utils.errors import ProviderError
from ..utils.json_repair import parse_json_response
from ..utils.similarity import cosine_similarity, mean_vector

logger = logging.getLogger(__name__)

VALID_CATEGORIES = [
    "general",
    "booking",
    "tour",
    "payment",
    "transportation",
    "accommodation",
    "visa",
    "other",
]

FALLBACK_CATEGORY = "other"
MIN_EXAMPLES_PER_CATEGORY = 2

CATEGORY_GUIDE = [
    "general - company/service information, opening hours, contact",
    "booking - reservations, schedules, cancellation, group size, changes, confirmation",
    "tour - tour details, itineraries, duration, routes, guides, sights",
    "payment - prices, payment, refunds, deposits, discounts",
    "transportation - airport pickup, buses, taxis, subway, transfers",
    "accommodation - hotels, guesthouses, check-in/out",
    "visa - visas, passports, entry requirements",
    "other - anything that fits none of the above",
]

CLASSIFY_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You classify customer questions for a Korea travel agency.

Categories:
{categories}

Return ONLY a JSON array with one object per entry:
[{{"id": "entry id", "category": "one category name"}}]"""),
    ("human", "{entries}")
])


def compute_centroids(
    documents: Iterable[CorpusDocument],
    min_examples: int = MIN_EXAMPLES_PER_CATEGORY
) -> Dict[str, List[float]]:
    """
    Mean embedding per category.

    Only categories with at least `min_examples` labelled, embedded
    documents get a centroid.
    """
    by_category: Dict[str, List[List[float]]] = {}
    for doc in documents:
        if doc.category and doc.embedding:
            by_category.setdefault(doc.category, []).append(doc.embedding)

    return {
        category: mean_vector(vectors)
        for category, vectors in by_category.items()
        if len(vectors) >= min_examples
    }


def assign_categories(
    documents: Iterable[CorpusDocument],
    centroids: Dict[str, Sequence[float]],
    low_confidence: Optional[float] = None
) -> List[CategoryAssignment]:
    """
    Nearest centroid by cosine similarity for each embedded document.

    A best similarity below `low_confidence` assigns "other".
    """
    low_confidence = settings.low_confidence_threshold if low_confidence is None else low_confidence
    assignments = []
    for doc in documents:
        if not doc.embedding or not centroids:
            continue
        best_category, best_similarity = max(
            ((category, cosine_similarity(doc.embedding, centroid)) for category, centroid in centroids.items()),
            key=lambda scored: scored[1]
        )
        if best_similarity < low_confidence:
            assignments.append(CategoryAssignment(
                document_id=doc.id,
                category=FALLBACK_CATEGORY,
                similarity=best_similarity,
                method=AssignmentMethod.LOW_CONFIDENCE,
            ))
        else:
            assignments.append(CategoryAssignment(
                document_id=doc.id,
                category=best_category,
                similarity=best_similarity,
                method=AssignmentMethod.CENTROID,
            ))
    return assignments


def document_question(doc: CorpusDocument) -> str:
    meta = doc.metadata
    return meta.get("question_local") or meta.get("question") or doc.text[:300]


class CategoryClassifier:
    """
    Labels uncategorised documents.

    Backfills missing embeddings first, then assigns each unlabelled document
    to its nearest category centroid. With no usable centroids (cold start)
    the completion provider classifies them in batches instead.
    """

    def __init__(
        self,
        retriever: Optional[CorpusRetriever] = None,
        completion: Optional[CompletionClient] = None,
    ):
        self.retriever = retriever or get_retriever()
        self.store = self.retriever.store
        self.completion = completion or get_completion_client()

    async def classify(self, source_types: Iterable[SourceType]) -> CategorizationSummary:
        source_types = list(source_types)

        backfill = await self.retriever.backfill_embeddings(source_types)
        centroids = compute_centroids(await self.store.labeled_documents(source_types))

        if not centroids:
            logger.warning("[categorize] No category has enough labelled examples, using completion fallback")
            summary = await self._classify_with_completion(source_types)
        else:
            logger.info(f"[categorize] Centroids: {', '.join(sorted(centroids))}")
            unlabeled = await self.store.unlabeled_documents(source_types, require_embedding=True)
            assignments = assign_categories(unlabeled, centroids)
            summary = await self._write(assignments, method="centroid")

        summary.embeddings_generated = backfill.embedded
        logger.info(
            f"[categorize] Done: {backfill.embedded} embeddings generated, "
            f"{summary.categorized}/{summary.total} categorized, {summary.failed} failed ({summary.method})"
        )
        return summary

    async def _write(self, assignments: List[CategoryAssignment], method: str) -> CategorizationSummary:
        """Persist assignments with one update per category"""
        summary = CategorizationSummary(
            total=len(assignments),
            method=method if assignments else "none",
            assignments=assignments,
        )
        by_category: Dict[str, List[str]] = {}
        for assignment in assignments:
            by_category.setdefault(assignment.category, []).append(assignment.document_id)

        for category, ids in by_category.items():
            try:
                summary.categorized += await self.store.set_category(ids, category)
            except Exception as e:
                logger.error(f"[categorize] Failed to write category '{category}' for {len(ids)} documents: {e}")
                summary.failed += len(ids)
        return summary

    async def _classify_with_completion(self, source_types: List[SourceType]) -> CategorizationSummary:
        documents = await self.store.unlabeled_documents(source_types, require_embedding=False)
        if not documents:
            return CategorizationSummary(method="none")

        batch_size = settings.categorize_batch_size
        assignments: List[CategoryAssignment] = []
        failed = 0
        for start in range(0, len(documents), batch_size):
            batch = documents[start:start + batch_size]
            try:
                assignments.extend(await self._classify_batch(batch))
            except ProviderError as e:
                logger.error(f"[categorize] Batch classification failed (offset {start}): {e.message}")
                failed += len(batch)

        summary = await self._write(assignments, method="llm")
        summary.total = len(documents)
        summary.method = "llm"
        summary.failed += failed
        return summary

    async def _classify_batch(self, batch: List[CorpusDocument]) -> List[CategoryAssignment]:
        """
        Raises:
            ProviderError: Completion provider unavailable
        """
        entries = "\n".join(f"id={doc.id} Q: {document_question(doc)}" for doc in batch)
        text = await self.completion.complete(
            CLASSIFY_PROMPT,
            {"categories": "\n".join(CATEGORY_GUIDE), "entries": entries},
            temperature=0.1,
        )

        parsed = parse_json_response(text, [])
        batch_ids = {doc.id for doc in batch}
        valid = set(VALID_CATEGORIES)
        assignments = []
        for raw in parsed:
            if not isinstance(raw, dict):
                continue
            try:
                label = CategoryLabelLLM.model_validate(raw)
            except ValidationError:
                continue
            if label.category not in valid or label.id not in batch_ids:
                logger.warning(f"[categorize] Discarding label {label.category!r} for id {label.id}")
                continue
            assignments.append(CategoryAssignment(
                document_id=label.id,
                category=label.category,
                method=AssignmentMethod.LLM,
            ))
            batch_ids.discard(label.id)
        return assignments
