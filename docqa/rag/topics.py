"""Follow-up question suggestions for an indexed document."""
import json
from typing import List, Optional

import structlog

from docqa import config
from docqa.llm_client import LLMClient, chat_client
from docqa.rag.retriever import Retriever, format_context

logger = structlog.get_logger()

SAMPLE_QUERY = "overview summary"

DEFAULT_TOPICS = [
    "What is the main topic of this document?",
    "Can you summarize the key points?",
    "What are the most important conclusions?",
    "Are there any important definitions or terms?",
    "What evidence or examples does the document give?",
]

TOPICS_PROMPT = """Based on the following excerpts from a document, suggest {count} short questions a reader might ask about it.

EXCERPTS:
{context}

Respond with a JSON array of strings only, for example: ["Question one?", "Question two?"]"""


def parse_topics(raw: str, limit: int) -> Optional[List[str]]:
    """Pull the first JSON array of strings out of the model output."""
    start = raw.find("[")
    end = raw.rfind("]")
    if start == -1 or end <= start:
        return None

    try:
        items = json.loads(raw[start : end + 1])
    except (json.JSONDecodeError, ValueError):
        return None

    if not isinstance(items, list):
        return None

    topics = [item.strip() for item in items if isinstance(item, str) and item.strip()]
    return topics[:limit] or None


class TopicSuggester:
    """Samples a document and asks the LLM for questions worth asking."""

    def __init__(
        self,
        retriever: Retriever,
        client: Optional[LLMClient] = None,
        model: str = None,
        temperature: float = None,
    ):
        self.retriever = retriever
        self.client = client or chat_client
        self.model = model or config.CHAT_MODEL
        self.temperature = (
            temperature if temperature is not None else config.TOPIC_TEMPERATURE
        )

    async def suggest_topics(self, document_id: str) -> List[str]:
        """Return up to five suggested questions; never raises."""
        try:
            results = await self.retriever.retrieve(
                document_id, SAMPLE_QUERY, top_k=config.TOPIC_SAMPLE_K
            )
            if not results:
                return list(DEFAULT_TOPICS)

            prompt = TOPICS_PROMPT.format(
                count=config.MAX_TOPICS, context=format_context(results)
            )
            raw = await self.client.invoke(
                [{"role": "user", "content": prompt}],
                model=self.model,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.warning(
                "topic_suggestion_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return list(DEFAULT_TOPICS)

        topics = parse_topics(raw, config.MAX_TOPICS)
        if topics is None:
            logger.warning("topic_output_unparseable", raw_preview=raw[:100])
            return list(DEFAULT_TOPICS)

        logger.info("topics_suggested", document_id=document_id, count=len(topics))
        return topics
