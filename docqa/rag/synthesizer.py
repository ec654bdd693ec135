"""Answer synthesis: retrieved passages + LLM call -> cited answer.

The model is asked for a JSON object but is not trusted to produce one.
A parse or validation failure is an expected outcome and is answered with
a deterministic fallback built from the retrieved chunks; only a failed
LLM call is reported to the caller.
"""
import re
from typing import List, Literal, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from docqa import config
from docqa.llm_client import LLMClient, chat_client
from docqa.rag.errors import RAGError, SynthesisFailure
from docqa.rag.retriever import RetrievalResult, Retriever, format_context

logger = structlog.get_logger()

UNANSWERABLE_MESSAGE = (
    "I couldn't find any relevant information to answer your question."
)

SYSTEM_PROMPT = """You are a helpful assistant that answers questions about a document.
Answer ONLY from the context below. If the context does not contain the answer, say so.

CONTEXT:
{context}

Respond with a single JSON object and nothing else, in exactly this format:
{{
  "answer": "your answer",
  "citations": [
    {{"text": "quoted passage", "source": "file name", "chunkIndex": 0}}
  ],
  "confidence": "high" | "medium" | "low"
}}"""

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


class Citation(BaseModel):
    """A snippet of a source chunk supporting part of an answer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str
    source: str
    chunk_index: int = 0


class RAGResponse(BaseModel):
    """Structured answer returned to the caller."""

    answer: str
    citations: List[Citation] = Field(default_factory=list)
    confidence: Literal["high", "medium", "low"]

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of text, if any.

    Markdown code fences are unwrapped first. Braces inside JSON strings
    do not count towards the balance.
    """
    code_block = _CODE_BLOCK_RE.search(text)
    if code_block and "{" in code_block.group(1):
        text = code_block.group(1)

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from here; try the next opening brace
        start = text.find("{", start + 1)

    return None


def parse_response(raw: str) -> Optional[RAGResponse]:
    """Validate the model output against the RAGResponse schema.

    Returns:
        The parsed response, or None when the output is not usable
    """
    candidate = extract_json_object(raw)
    if candidate is None:
        logger.warning("llm_output_has_no_json", raw_preview=raw[:100])
        return None

    try:
        return RAGResponse.model_validate_json(candidate)
    except ValidationError as e:
        logger.warning(
            "llm_output_validation_failed",
            error_count=e.error_count(),
            json_preview=candidate[:100],
        )
        return None


class AnswerSynthesizer:
    """Retrieve, prompt, parse and repair into a RAGResponse."""

    def __init__(
        self,
        retriever: Retriever,
        client: Optional[LLMClient] = None,
        model: str = None,
        temperature: float = None,
        top_k: int = None,
        preview_chars: int = None,
        fallback_citations: int = None,
    ):
        self.retriever = retriever
        self.client = client or chat_client
        self.model = model or config.CHAT_MODEL
        self.temperature = (
            temperature if temperature is not None else config.ANSWER_TEMPERATURE
        )
        self.top_k = top_k
        self.preview_chars = preview_chars or config.CITATION_PREVIEW_CHARS
        self.fallback_citations = fallback_citations or config.FALLBACK_CITATION_COUNT

    async def suggest_answer(
        self, question: str, document_id: Optional[str] = None
    ) -> RAGResponse:
        """Answer a question from a document, with citations.

        Args:
            question: The user's question
            document_id: Indexed document to answer from; general-chat mode
                when omitted or when retrieval fails

        Returns:
            A fully formed RAGResponse

        Raises:
            SynthesisFailure: If the language-model call fails
        """
        results = await self._retrieve(question, document_id)

        if not results:
            logger.info("no_relevant_context_found", document_id=document_id)
            return RAGResponse(answer=UNANSWERABLE_MESSAGE, citations=[], confidence="low")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.format(context=format_context(results))},
            {"role": "user", "content": question},
        ]

        try:
            raw = await self.client.invoke(
                messages, model=self.model, temperature=self.temperature
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "answer_synthesis_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise SynthesisFailure(f"Language model call failed: {e}", cause=e) from e

        parsed = parse_response(raw)
        if parsed is None:
            response = self._fallback(raw, results)
        else:
            response = self._enrich(parsed, results)

        logger.info(
            "answer_synthesized",
            document_id=document_id,
            parsed=parsed is not None,
            citation_count=len(response.citations),
            confidence=response.confidence,
        )
        return response

    async def _retrieve(
        self, question: str, document_id: Optional[str]
    ) -> List[RetrievalResult]:
        if document_id:
            try:
                return await self.retriever.retrieve(document_id, question, top_k=self.top_k)
            except (RAGError, ValueError) as e:
                logger.warning(
                    "retrieval_failed_using_general_corpus",
                    document_id=document_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return self.retriever.general_results(self.top_k)

    def _enrich(self, parsed: RAGResponse, results: List[RetrievalResult]) -> RAGResponse:
        """Replace model-declared quotes with the real chunk text they point at."""
        citations = []
        for citation in parsed.citations:
            match = _match_chunk(citation, results)
            if match is None:
                citations.append(citation)
                continue
            citations.append(
                Citation(
                    text=match.content[: self.preview_chars],
                    source=match.source,
                    chunk_index=match.chunk_index,
                )
            )
        return RAGResponse(
            answer=parsed.answer, citations=citations, confidence=parsed.confidence
        )

    def _fallback(self, raw: str, results: List[RetrievalResult]) -> RAGResponse:
        return RAGResponse(
            answer=raw.strip(),
            citations=[
                Citation(
                    text=result.content[: self.preview_chars],
                    source=result.source,
                    chunk_index=result.chunk_index,
                )
                for result in results[: self.fallback_citations]
            ],
            confidence="medium",
        )


def _match_chunk(
    citation: Citation, results: List[RetrievalResult]
) -> Optional[RetrievalResult]:
    same_source = [r for r in results if r.source == citation.source]
    for result in same_source:
        if result.chunk_index == citation.chunk_index:
            return result
    return same_source[0] if same_source else None
