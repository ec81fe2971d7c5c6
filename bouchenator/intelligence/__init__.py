"""
Evidence gathering for Bouchenator.

Entity resolution, site reading, brand theme sampling and the auxiliary
press, news and product-discovery fetchers, merged into a ContextBundle.
"""

from .context_bundle import (
    build_context_bundle,
    context_bundle_to_prompt,
    summarize_context_bundle_for_logs,
)
from .disambiguation import DisambiguationResult, EntityResolver

__all__ = [
    "DisambiguationResult",
    "EntityResolver",
    "build_context_bundle",
    "context_bundle_to_prompt",
    "summarize_context_bundle_for_logs",
]
