"""PydanticAI agents for the briefing pipeline.

This package contains the two generative calls the pipeline makes:

InsightExtractor:
    Fast per-email extraction (map phase). One call per email.
    Returns an Insight or raises ExtractionError.

NarrativeSynthesizer:
    Single large synthesis call over all insights (reduce phase).
    Returns raw briefing JSON text or raises SynthesisError.

Example:
    >>> from agents import InsightExtractor, NarrativeSynthesizer
    >>> extractor = InsightExtractor(config)
    >>> synthesizer = NarrativeSynthesizer(config)
"""

from agents.extractor import InsightExtractor
from agents.synthesizer import NarrativeSynthesizer

__all__ = [
    "InsightExtractor",
    "NarrativeSynthesizer",
]
