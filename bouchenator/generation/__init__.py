"""
Generation for Bouchenator.

Ideas, build plans and custom ideas all run through one provider cascade
(Gemini SDK, OpenAI, Gemini REST) with a deterministic generator at the end.
"""

from .cascade import CascadeOutcome, GenerationCascade
from .providers import GenerationRequest, default_providers

__all__ = [
    "CascadeOutcome",
    "GenerationCascade",
    "GenerationRequest",
    "default_providers",
]
