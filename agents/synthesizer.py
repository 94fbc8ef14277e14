"""Narrative synthesizer agent for the reduce phase.

Wraps one large text-generation call over the whole insight set. The model
acts as an editor-in-chief: it groups insights into narrative clusters,
picks serendipity items and radar signals, and cites email ids for every
claim.

The output is returned as raw text. It is frequently truncated by the
generation length limit, so parsing and repair happen in the reducer, not
here. This agent only distinguishes "got text" from "failed".
"""

import logging

from pydantic_ai import Agent
from pydantic_ai.models import Model

from agents.base import create_model, model_label
from config import Config
from errors import SynthesisError

logger = logging.getLogger(__name__)


SYNTHESIZER_PROMPT = """You are a senior intelligence analyst compiling a daily briefing from newsletter insights.

## Grounding rules
1. Use ONLY information contained in the provided insights. You have no outside knowledge.
2. Every statement must be traceable to at least one insight listed in the cluster's source_ids.
3. Prefer the language of the sources (their summaries and key claims) over new framings.
4. Do not invent dramatic titles, speculation, background context or dissent.

## Output structure (JSON)
{
  "executive_summary": ["...", "...", "..."],
  "narrative_clusters": [
    {
      "title": "Short descriptive title using source language",
      "synthesis": "2-3 sentences on what the sources actually say",
      "consensus_sentiment": "Positive" | "Negative" | "Mixed",
      "counter_point": "Publisher X argued Y" or null,
      "source_ids": ["<insight ID>", "<insight ID>"]
    }
  ],
  "serendipity_corner": [
    {"title": "...", "insight": "...", "source_id": "<insight ID>", "publisher": "..."}
  ],
  "radar_signals": ["term1", "term2", "term3"]
}

## Strict requirements
1. executive_summary: exactly 3 points, each supported by multiple sources.
2. narrative_clusters: 3-7 clusters, each with at least 2 source_ids. If a theme has fewer than 2 sources, do not create the cluster.
3. serendipity_corner: exactly 2 items taken from real insights that fit no cluster.
4. radar_signals: 3-5 specific entities or terms that appear in the insights, not generic concepts.
5. source_ids must be the exact ID values from the insights.
6. counter_point only when a source explicitly disagrees; otherwise null.

Return ONLY valid JSON. No markdown, no explanation."""

SYNTHESIZER_SETTINGS = {
    "temperature": 0.1,
    "top_p": 0.95,
    "max_tokens": 8192,
}


def _create_agent(model: str | Model) -> Agent[None, str]:
    """Create the underlying PydanticAI agent for synthesis."""
    return Agent(
        create_model(model),
        output_type=str,
        system_prompt=SYNTHESIZER_PROMPT,
        model_settings=SYNTHESIZER_SETTINGS,
        retries=1,
    )


def build_synthesis_message(context: str, insight_count: int) -> str:
    """Build the user message around the serialized insight context."""
    return f"""Here are {insight_count} newsletter insights. Synthesize them into an intelligence briefing:

{context}

Generate the briefing JSON now:"""


class NarrativeSynthesizer:
    """Turns the full insight set into draft briefing JSON text.

    Example:
        >>> synthesizer = NarrativeSynthesizer(config)
        >>> text = await synthesizer.synthesize(context, insight_count=42)
    """

    def __init__(self, config: Config, model: str | Model | None = None):
        """Initialize the synthesizer.

        Args:
            config: Application configuration with model settings
            model: Optional model override (string or PydanticAI Model)
        """
        self.config = config
        self._model = model if model is not None else config.synthesizer_model
        self._agent = _create_agent(self._model)

    @property
    def model_name(self) -> str:
        return model_label(self._model)

    async def synthesize(self, context: str, insight_count: int) -> str:
        """Run the synthesis call.

        Returns:
            Raw model text (expected JSON, possibly malformed or truncated)

        Raises:
            SynthesisError: The call failed or returned no text
        """
        message = build_synthesis_message(context, insight_count)
        try:
            result = await self._agent.run(message)
        except Exception as e:
            logger.error("Synthesis call failed | type=%s error=%s", type(e).__name__, e)
            raise SynthesisError(f"Synthesis call failed ({type(e).__name__}): {e}") from e

        text = result.output
        if not text or not text.strip():
            raise SynthesisError("Empty response from synthesizer")

        logger.info("Synthesis complete | insights=%d chars=%d", insight_count, len(text))
        return text
