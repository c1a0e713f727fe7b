"""
Text-to-graph extraction.
"""

from .chunking import chunk_text
from .extraction import ExtractionPipeline, ExtractionResult, parse_operations

__all__ = ["chunk_text", "ExtractionPipeline", "ExtractionResult", "parse_operations"]
