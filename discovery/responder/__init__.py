"""
Responder

Scores retrieved evidence, requests more data when it is thin,
and synthesizes the final answer with source citations.
"""

from .response_agent import ResponseAgent, SynthesisResult

__all__ = ["ResponseAgent", "SynthesisResult"]
