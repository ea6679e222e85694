"""FAQ Agent - answers customer questions from the knowledge base"""
import logging
from typing import List, Optional, Sequence

from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from pydantic import ValidationError

from ..config import settings
from ..rag.retriever import CorpusRetriever, get_retriever
from ..schemas.agent import FaqAnswerLLM
from ..schemas.corpus import SearchHit
from ..schemas.faq import ChatTurn, FaqAnswer, FaqReference, FaqTier
from ..tools.completion import CompletionClient, get_completion_client
from ..utils.errors import ProviderError
from ..utils.json_repair import parse_json_response

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
NO_MATCH_ANSWER = (
    "I couldn't find an answer to that in our FAQ. "
    "Please contact our travel team and we'll get back to you shortly."
)

FAQ_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You are a customer support assistant for a Korea travel agency.
Answer ONLY from the FAQ entries below. If they do not answer the question, set matched to false.

FAQ ENTRIES:
{faq_context}

Return ONLY valid JSON:
{{"matched": true, "answer": "answer in the customer's language", "citedIds": ["ids of the entries you used"]}}"""),
    MessagesPlaceholder("history", optional=True),
    ("human", "{question}")
])


def entry_question(hit: SearchHit) -> str:
    """Question text of a knowledge entry, falling back to the first line of its text"""
    question = hit.metadata.get("question")
    if question:
        return question
    first_line = hit.text.strip().split("\n", 1)[0]
    return first_line[3:] if first_line.startswith("Q: ") else first_line


def entry_answer(hit: SearchHit) -> str:
    answer = hit.metadata.get("answer")
    if answer:
        return answer
    _, _, rest = hit.text.partition("\nA: ")
    return rest.split("\nQ(local):", 1)[0].strip() or hit.text


def _reference(hit: SearchHit) -> FaqReference:
    return FaqReference(document_id=hit.document_id, question=entry_question(hit), similarity=hit.similarity)


class FaqAgent:
    """
    Answers a question in one of three tiers:

    - direct: the best entry is close enough to return its stored answer
    - rag: the completion provider answers from the top entries and cites them
    - no_match: nothing usable, with up to three related questions as suggestions

    answer() never raises; provider failures fall through to no_match.
    """

    def __init__(
        self,
        retriever: Optional[CorpusRetriever] = None,
        completion: Optional[CompletionClient] = None,
    ):
        self.retriever = retriever or get_retriever()
        self.completion = completion or get_completion_client()

    async def answer(self, question: str, history: Optional[Sequence[ChatTurn]] = None) -> FaqAnswer:
        """
        Answer a customer question.

        Args:
            question: Customer question
            history: Prior conversation turns, oldest first

        Returns:
            FaqAnswer with tier, sources and suggestions
        """
        embedding = await self.retriever.gateway.embed_query(question)
        if embedding is None:
            logger.warning("[faq] Question embedding unavailable, answering no_match")
            return self._no_match([])

        hits = await self.retriever.search_knowledge(
            embedding, settings.faq_top_k, settings.faq_source_min_similarity
        )
        top_similarity = hits[0].similarity if hits else 0.0
        logger.info(f"[faq] {len(hits)} entries, top similarity {top_similarity:.2f} for: \"{question[:50]}\"")

        if not hits:
            return self._no_match(hits)

        if top_similarity >= settings.faq_direct_threshold:
            best = hits[0]
            return FaqAnswer(
                answer=entry_answer(best),
                tier=FaqTier.DIRECT,
                sources=[_reference(best)],
                top_similarity=top_similarity,
            )

        llm_answer = await self._generate(question, hits, history or [])
        if llm_answer is None or not llm_answer.matched or not llm_answer.answer.strip():
            return self._no_match(hits)

        supplied = {hit.document_id: hit for hit in hits}
        cited = [doc_id for doc_id in dict.fromkeys(llm_answer.cited_ids) if doc_id in supplied]
        dropped = len(set(llm_answer.cited_ids)) - len(cited)
        if dropped:
            logger.warning(f"[faq] Dropped {dropped} cited ids that were not supplied")

        return FaqAnswer(
            answer=llm_answer.answer.strip(),
            tier=FaqTier.RAG,
            sources=[_reference(supplied[doc_id]) for doc_id in cited],
            top_similarity=top_similarity,
        )

    async def _generate(
        self,
        question: str,
        hits: List[SearchHit],
        history: Sequence[ChatTurn]
    ) -> Optional[FaqAnswerLLM]:
        faq_context = "\n\n".join(
            f"[ID:{hit.document_id}]\nQ: {entry_question(hit)}\nA: {entry_answer(hit)}"
            for hit in hits
        )
        variables = {
            "faq_context": faq_context,
            "question": question,
            "history": [(turn.role, turn.content) for turn in history],
        }

        try:
            text = await self.completion.complete(FAQ_PROMPT, variables, temperature=0.3, max_output_tokens=1024)
        except ProviderError as e:
            logger.warning(f"[faq] Completion unavailable: {e.message}")
            return None

        parsed = parse_json_response(text, None)
        if not isinstance(parsed, dict):
            if text.strip().startswith("[NO_MATCH]"):
                return None
            logger.warning(f"[faq] Non-JSON answer, using raw text: {text[:100]}")
            return FaqAnswerLLM(answer=text.strip(), matched=True)

        try:
            return FaqAnswerLLM.model_validate(parsed)
        except ValidationError as e:
            logger.warning(f"[faq] Invalid answer payload: {e}")
            return None

    @staticmethod
    def _no_match(hits: List[SearchHit]) -> FaqAnswer:
        suggestions = [
            _reference(hit) for hit in hits
            if hit.similarity >= settings.faq_suggestion_threshold
        ][:MAX_SUGGESTIONS]
        return FaqAnswer(
            answer=NO_MATCH_ANSWER,
            tier=FaqTier.NO_MATCH,
            suggestions=suggestions,
            top_similarity=hits[0].similarity if hits else None,
        )


# Global singleton instance
_faq_agent: Optional[FaqAgent] = None


def get_faq_agent() -> FaqAgent:
    """Get global FaqAgent instance"""
    global _faq_agent
    if _faq_agent is None:
        _faq_agent = FaqAgent()
    return _faq_agent
