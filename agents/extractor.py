"""Insight extractor agent for the map phase.

Wraps one text-generation call per email: the email text (truncated to the
configured cap) plus publisher/subject/date metadata goes in, a JSON object
with themes, entities, sentiment, summary and key claims comes out.

Design Philosophy:
    - Speed over depth: a fast model, low temperature, small output budget
    - Raw text output: the model returns text that is parsed here, so a
      malformed answer is an ordinary ExtractionError rather than an
      agent-internal retry loop
    - No fallback here: the map stage owns the default-insight policy
"""

import logging

from pydantic import ValidationError
from pydantic_ai import Agent
from pydantic_ai.models import Model

from agents.base import create_model, model_label
from config import Config
from errors import ExtractionError
from models.document import Document
from models.insight import ExtractedInsight, Insight
from tools.json_repair import strip_code_fences

logger = logging.getLogger(__name__)


EXTRACTOR_PROMPT = """You are an intelligence analyst extracting key information from newsletter content.

For the newsletter provided, extract:
1. themes: 2-5 key topics discussed (e.g. "AI regulation", "Fed policy", "China trade")
2. entities: named entities mentioned (people, organizations, stock tickers, countries)
3. sentiment: overall sentiment toward the main topic - one of "positive", "negative", "neutral"
4. summary: a 1-2 sentence summary of the main point
5. key_claims: 2-3 short statements of the main claims or insights

Return ONLY a JSON object with exactly these keys:
{
  "themes": ["..."],
  "entities": ["..."],
  "sentiment": "positive" | "negative" | "neutral",
  "summary": "...",
  "key_claims": ["..."]
}"""

EXTRACTOR_SETTINGS = {
    "temperature": 0.2,
    "top_p": 0.95,
    "max_tokens": 1024,
}


def _create_agent(model: str | Model) -> Agent[None, str]:
    """Create the underlying PydanticAI agent for extraction."""
    return Agent(
        create_model(model),
        output_type=str,
        system_prompt=EXTRACTOR_PROMPT,
        model_settings=EXTRACTOR_SETTINGS,
        retries=1,
    )


def build_extraction_message(document: Document, max_chars: int) -> str:
    """Build the user message for one email."""
    return f"""Analyze this newsletter:

Publisher: {document.publisher}
Subject: {document.subject}
Date: {document.sent_at.isoformat()}

Content:
{document.truncated_text(max_chars)}

Extract the key themes, entities, sentiment, summary, and claims."""


def parse_extraction(document: Document, text: str | None) -> Insight:
    """Parse the extractor's raw text into an Insight.

    Raises:
        ExtractionError: If the text is empty or not the expected JSON object
    """
    if not text or not text.strip():
        raise ExtractionError(f"Empty extractor output for {document.id}")
    try:
        extracted = ExtractedInsight.model_validate_json(strip_code_fences(text))
    except ValidationError as e:
        raise ExtractionError(
            f"Unparseable extractor output for {document.id}: {e.error_count()} error(s)"
        ) from e
    return Insight.from_extraction(document, extracted)


class InsightExtractor:
    """Extracts a structured Insight from one newsletter email.

    Example:
        >>> extractor = InsightExtractor(config)
        >>> insight = await extractor.extract(document)
        >>> insight.sentiment
        <Sentiment.POSITIVE: 'positive'>
    """

    def __init__(self, config: Config, model: str | Model | None = None):
        """Initialize the extractor.

        Args:
            config: Application configuration (model, content cap)
            model: Optional model override (string or PydanticAI Model)
        """
        self.config = config
        self._model = model if model is not None else config.extractor_model
        self._agent = _create_agent(self._model)

    @property
    def model_name(self) -> str:
        return model_label(self._model)

    async def extract(self, document: Document) -> Insight:
        """Extract an insight from a single email.

        Raises:
            ExtractionError: Empty or unparseable model output
            Exception: Any transport/provider error from the model call
        """
        message = build_extraction_message(document, self.config.max_content_chars)
        result = await self._agent.run(message)
        insight = parse_extraction(document, result.output)
        logger.debug(
            "Extracted | id=%s sentiment=%s themes=%d",
            document.id, insight.sentiment.value, len(insight.themes),
        )
        return insight
