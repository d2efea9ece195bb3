"""Gemini adapter for pure request/response transformations.

Gemini is reached through its OpenAI-compatible endpoint, so the OpenAI adapter is reused.
"""

from .openai import OpenAIRequestAdapter

GeminiRequestAdapter = OpenAIRequestAdapter
