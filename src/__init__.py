"""
AI Visibility Tracker

Tracks whether a brand is surfaced by AI answer engines for its keywords:
1. Runs checks across engine adapters (Gemini, Perplexity, ChatGPT, plugins)
2. Stores every answer as an immutable observation
3. Derives visibility KPIs and daily trends
4. Proposes recommendations from recent observations
"""

__version__ = "0.1.0"
