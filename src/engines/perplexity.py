"""
Perplexity Engine Adapter

Asks Perplexity the tracked keyword as a user would and checks whether the
answer surfaces the brand.

Presence: brand name or tracked domain appears in the answer text, or the
tracked domain is among the cited sources.
Position: 1-based rank of the first citation on the tracked domain; when only
mentioned in text, the rank of the first list item naming the brand (1 if the
answer is not a list).

API: https://docs.perplexity.ai/
"""

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from src.database.repository import KeywordInfo
from src.engines.base import BrandContext, EngineAdapter, EngineResult
from src.errors import EngineAdapterError
from src.utils.domain_filter import first_citation_position

logger = logging.getLogger(__name__)

# Numbered or bulleted list items: "1. Acme", "- Acme", "* Acme"
LIST_ITEM_PATTERN = re.compile(r"^\s*(?:\d+[\.\)]|[\-\*•])\s+(.+)$", re.MULTILINE)

SNIPPET_LENGTH = 500

SYSTEM_PROMPT = (
    "You are a helpful assistant answering a user's search. Recommend specific "
    "products, companies and websites where relevant, as a ranked list when "
    "there are several, and cite your sources."
)


class PerplexityAdapter(EngineAdapter):
    """
    Live adapter for the Perplexity chat completions API.

    Usage:
        adapter = PerplexityAdapter(api_key="your_api_key")
        result = await adapter.run(keyword, brand)

    A fresh HTTP client is opened per call. Retries and timeouts are left to
    the check orchestrator.
    """

    BASE_URL = "https://api.perplexity.ai"
    ENGINE_ID = "perplexity"

    # Available models
    MODELS = {
        "sonar": "sonar",
        "sonar-pro": "sonar-pro",
    }

    def __init__(
        self,
        api_key: str,
        model: str = "sonar",
        base_url: str = BASE_URL,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Perplexity adapter.

        Args:
            api_key: Perplexity API key
            model: Model to use (sonar, sonar-pro, or a raw model name)
            base_url: API base URL
            temperature: Response temperature (0-1)
            max_tokens: Maximum tokens in response
            transport: Optional httpx transport (tests)
        """
        if not api_key:
            raise ValueError("Perplexity API key is required")

        self.api_key = api_key
        self.model = self.MODELS.get(model, model)
        self.base_url = base_url
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.transport = transport

    async def run(self, keyword: KeywordInfo, brand: BrandContext) -> EngineResult:
        response = await self._complete(keyword.text)

        answer = ""
        choices = response.get("choices") or []
        if choices:
            answer = (choices[0].get("message") or {}).get("content") or ""
        citations = [c for c in (response.get("citations") or []) if isinstance(c, str)]

        return self.interpret(answer, citations, brand)

    @classmethod
    def interpret(cls, answer: str, citations: List[str], brand: BrandContext) -> EngineResult:
        """Turn an answer and its citations into an EngineResult."""
        snippet = answer[:SNIPPET_LENGTH]
        cited_at = first_citation_position(citations, brand.domain)
        mention_at = cls._mention_position(answer, brand.needles)

        if cited_at is None and mention_at is None:
            return EngineResult(presence=False, answer_snippet=snippet)

        return EngineResult(
            presence=True,
            position=cited_at or mention_at,
            answer_snippet=snippet,
            citations_count=len(citations),
            observed_urls=list(citations),
        )

    @staticmethod
    def _mention_position(answer: str, needles: List[str]) -> Optional[int]:
        """Rank of the first list item naming the brand; 1 for a prose mention."""
        text = answer.lower()
        if not needles or not any(n in text for n in needles):
            return None

        for i, match in enumerate(LIST_ITEM_PATTERN.finditer(text)):
            if any(n in match.group(1) for n in needles):
                return i + 1
        return 1

    async def _complete(self, question: str) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": question},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            transport=self.transport,
        ) as client:
            try:
                response = await client.post("/chat/completions", json=payload)
            except httpx.HTTPError as e:
                raise EngineAdapterError(self.ENGINE_ID, f"request failed: {e}") from e

        if response.status_code >= 400:
            raise EngineAdapterError(
                self.ENGINE_ID,
                f"API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise EngineAdapterError(self.ENGINE_ID, "invalid JSON response") from e
