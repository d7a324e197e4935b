"""
HTTP client for the external product-name normalization oracle.

The oracle is a generative model behind the Anthropic Messages API. It is
treated as best-effort: every request has a bounded timeout and a bounded
number of retries, and every failure surfaces as an OracleError subclass
for the caller to degrade on.
"""

import httpx
import asyncio
import json
import re
from typing import List, Dict, Any, Optional
from core.config import settings
from core.exceptions import (
    OracleError,
    OracleResponseError,
    OracleUnavailableError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
)
from models.base import ProductCategory
import logging

logger = logging.getLogger(__name__)

CATEGORY_LIST = ", ".join(c.value for c in ProductCategory)

SINGLE_PROMPT = """You are a product name normalizer. Given a Vietnamese product name (often mixed with English brand names), extract:
1. Normalized English product name (clean, standardized)
2. Product category
3. Brand name (if identifiable)

Categories (use ONLY these): {categories}

Examples:
- "sữa rửa mặt kiehl" → name: "Kiehl's Face Wash", category: "skincare", brand: "Kiehl's"
- "túi katespade new york" → name: "Kate Spade Handbag", category: "bags", brand: "Kate Spade"
- "glucosamine kirland costco" → name: "Kirkland Glucosamine", category: "supplements", brand: "Kirkland"
- "bỉm huggies size 3" → name: "Huggies Diapers Size 3", category: "baby", brand: "Huggies"

Product name to normalize: "{name}"

Respond in JSON format ONLY:
{{"name": "...", "category": "...", "brand": "..." or null}}"""

BATCH_PROMPT = """You are a product name normalizer. Given Vietnamese product names (often mixed with English brand names), extract for EACH:
1. Normalized English product name (clean, standardized)
2. Product category
3. Brand name (if identifiable)

Categories (use ONLY these): {categories}

Product names to normalize:
{names}

Respond in JSON array format ONLY:
[{{"original": "...", "name": "...", "category": "...", "brand": "..." or null}}, ...]"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


class NormalizationOracle:
    """
    Normalize raw product names through the Messages API.

    Attributes:
        api_key: Anthropic API key; without it the oracle is disabled
        timeout: Request timeout in seconds
        max_retries: Attempts per request for retryable failures
        retry_delay: Initial backoff delay in seconds
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 1.0
    ):
        self.api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        self.base_url = (base_url or settings.ORACLE_BASE_URL).rstrip("/")
        self.model = model or settings.ORACLE_MODEL
        self.timeout = timeout if timeout is not None else settings.ORACLE_TIMEOUT_SECONDS
        self.max_retries = max(1, max_retries if max_retries is not None else settings.ORACLE_MAX_RETRIES)
        self.retry_delay = retry_delay

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/v1/messages"

    async def normalize_one(self, raw_name: str) -> Dict[str, Any]:
        """
        Normalize a single name.

        Returns:
            Dict with "name", "category" and "brand" keys (untrusted values)

        Raises:
            OracleError: On any failure
        """
        prompt = SINGLE_PROMPT.format(categories=CATEGORY_LIST, name=raw_name)
        text = await self._complete(prompt, max_tokens=256, names=[raw_name])

        match = _JSON_OBJECT.search(text)
        if not match:
            raise OracleResponseError(
                "No JSON object in oracle response",
                context={"names": [raw_name], "response_body": text[:500]}
            )
        parsed = self._load_json(match.group(0), [raw_name])
        if not isinstance(parsed, dict):
            raise OracleResponseError(
                "Oracle response is not an object",
                context={"names": [raw_name], "response_body": text[:500]}
            )
        return parsed

    async def normalize_batch(self, raw_names: List[str]) -> List[Dict[str, Any]]:
        """
        Normalize several names in one request.

        Returns:
            List of dicts with "original", "name", "category", "brand" keys.
            Entries may be missing or out of order; callers match on "original".

        Raises:
            OracleError: On any failure
        """
        numbered = "\n".join(f'{idx + 1}. "{name}"' for idx, name in enumerate(raw_names))
        prompt = BATCH_PROMPT.format(categories=CATEGORY_LIST, names=numbered)
        text = await self._complete(prompt, max_tokens=1024, names=raw_names)

        match = _JSON_ARRAY.search(text)
        if not match:
            raise OracleResponseError(
                "No JSON array in oracle response",
                context={"names": raw_names[:10], "response_body": text[:500]}
            )
        parsed = self._load_json(match.group(0), raw_names)
        if not isinstance(parsed, list):
            raise OracleResponseError(
                "Oracle response is not an array",
                context={"names": raw_names[:10], "response_body": text[:500]}
            )
        return [entry for entry in parsed if isinstance(entry, dict)]

    @staticmethod
    def _load_json(payload: str, names: List[str]) -> Any:
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise OracleResponseError(
                "Malformed JSON in oracle response",
                context={"names": names[:10], "response_body": payload[:500]},
                original_exception=e
            )

    async def _complete(self, prompt: str, max_tokens: int, names: List[str]) -> str:
        """Send one prompt and return the first text block of the reply"""
        if not self.enabled:
            raise OracleUnavailableError(
                "Normalization oracle is not configured",
                context={"oracle_url": self.messages_url}
            )

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        body = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await self._post_with_retry(client, headers, body, names)

        try:
            data = response.json()
        except ValueError as e:
            raise OracleResponseError(
                "Failed to parse oracle response body",
                context={"oracle_url": self.messages_url, "response_body": response.text[:500]},
                original_exception=e
            )

        for block in data.get("content", []) if isinstance(data, dict) else []:
            if block.get("type") == "text":
                return block.get("text", "")

        raise OracleResponseError(
            "Oracle response has no text content",
            context={"oracle_url": self.messages_url, "names": names[:10]}
        )

    async def _post_with_retry(
        self,
        client: httpx.AsyncClient,
        headers: Dict[str, str],
        body: Dict[str, Any],
        names: List[str]
    ) -> httpx.Response:
        """
        POST with bounded retries and exponential backoff.

        Raises:
            AuthenticationError: On 401/403, immediately
            RateLimitError: When 429 persists through all attempts
            NetworkError: On timeouts, connection failures or 5xx after all attempts
        """
        context = {"oracle_url": self.messages_url, "names": names[:10]}

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            delay = self.retry_delay * (2 ** attempt)

            try:
                response = await client.post(self.messages_url, headers=headers, json=body)
            except httpx.TimeoutException as e:
                if last_attempt:
                    raise NetworkError(
                        f"Oracle timeout after {self.max_retries} attempts",
                        context={**context, "timeout": self.timeout},
                        original_exception=e
                    )
                logger.warning(f"Oracle timeout. Retrying in {delay} seconds")
                await asyncio.sleep(delay)
                continue
            except httpx.HTTPError as e:
                if last_attempt:
                    raise NetworkError(
                        f"Oracle network error after {self.max_retries} attempts",
                        context=context,
                        original_exception=e
                    )
                logger.warning(f"Oracle network error. Retrying in {delay} seconds")
                await asyncio.sleep(delay)
                continue

            if response.status_code in (401, 403):
                raise AuthenticationError(
                    "Oracle rejected credentials",
                    context={**context, "status_code": response.status_code}
                )

            if response.status_code == 429:
                retry_after = _retry_after_seconds(response, delay)
                if last_attempt:
                    raise RateLimitError(
                        "Oracle rate limit exceeded",
                        context={**context, "status_code": 429},
                        retry_after=retry_after
                    )
                logger.warning(f"Oracle rate limited. Retrying after {retry_after} seconds")
                await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 500:
                if last_attempt:
                    raise NetworkError(
                        f"Oracle server error {response.status_code}",
                        context={**context, "status_code": response.status_code,
                                 "response_body": response.text[:500]}
                    )
                logger.warning(
                    f"Oracle server error {response.status_code}. "
                    f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                raise OracleError(
                    f"Oracle request failed with status {response.status_code}",
                    context={**context, "status_code": response.status_code,
                             "response_body": response.text[:500]}
                )

            return response

        raise OracleError("Oracle retries exhausted", context=context)


MAX_RETRY_AFTER_SECONDS = 60


def _retry_after_seconds(response: httpx.Response, default: float) -> int:
    try:
        seconds = int(response.headers.get("Retry-After", default))
    except (TypeError, ValueError):
        seconds = int(default)
    return max(0, min(seconds, MAX_RETRY_AFTER_SECONDS))
