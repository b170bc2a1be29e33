from .narrative import LLMNarrativeEnhancer, NarrativeEnhancer
from .synthesizer import DescriptionSynthesizer

__all__ = ["DescriptionSynthesizer", "LLMNarrativeEnhancer", "NarrativeEnhancer"]
