import json
import logging
import time
from threading import Lock

import requests
from django.conf import settings

from .errors import GenerationFailure
from .schemas import validate_schema

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window rate limiter (thread-safe).

    Allows up to `rate` requests per 1-second window. The window opens on the
    first request; once its tokens are spent the caller sleeps until the
    window expires and a fresh one starts with a full bucket.
    """

    def __init__(self, rate: int):
        self._rate = rate
        self._tokens = rate
        self._window_start = None
        self._lock = Lock()

    def acquire(self):
        with self._lock:
            now = time.monotonic()

            if self._window_start is None or (now - self._window_start) >= 1.0:
                self._window_start = now
                self._tokens = self._rate

            if self._tokens > 0:
                self._tokens -= 1
            else:
                wait = 1.0 - (now - self._window_start)
                if wait > 0:
                    time.sleep(wait)
                self._window_start = time.monotonic()
                self._tokens = self._rate - 1


def build_system_prompt(brand_voice: str) -> str:
    return (
        "You are a JSON-LD Schema.org expert. Your task is to generate machine-readable "
        "product schemas that are optimized for:\n"
        "1. LLM search engines (ChatGPT, Perplexity)\n"
        "2. Google Rich Results\n"
        "3. Voice assistants\n"
        "\n"
        "BRAND VOICE GUIDELINES:\n"
        f"{brand_voice}\n"
        "\n"
        "RULES:\n"
        "- Output ONLY a valid Schema.org Product JSON-LD object\n"
        '- "@context" must be "https://schema.org" and "@type" must be "Product"\n'
        '- Always include "name", "description" and "brand" {"@type": "Brand", "name": ...}\n'
        "- Use the brand voice to inform how you describe the product\n"
        "- Be factual and avoid hallucination - only use information provided\n"
        "- Keep descriptions concise but informative\n"
        "- Include all relevant product attributes"
    )


def build_user_prompt(product) -> str:
    lines = [
        "Generate a JSON-LD Product schema for this product:",
        "",
        f"TITLE: {product.title}",
        f"DESCRIPTION: {product.description}",
        f"VENDOR/BRAND: {product.vendor}",
    ]
    if product.sku:
        lines.append(f"SKU: {product.sku}")
    if product.price:
        lines.append(f"PRICE: {product.price}")
    lines += ["", "Create a Schema.org Product JSON-LD that accurately represents this product."]
    return "\n".join(lines)


class GenerationClient:
    """Generates product JSON-LD through an OpenAI-compatible chat completions API."""

    def __init__(self, rate_limiter: RateLimiter = None):
        self._base_url = settings.OPENAI_API_BASE_URL.rstrip('/')
        self._model = settings.OPENAI_MODEL
        self._timeout = settings.OPENAI_TIMEOUT
        self._session = requests.Session()
        self._session.headers.update({'Authorization': f'Bearer {settings.OPENAI_API_KEY}'})
        self._max_retries = settings.OPENAI_MAX_RETRIES
        self._rate_limiter = rate_limiter or RateLimiter(settings.OPENAI_RATE_LIMIT)

    def generate(self, product, brand_voice: str) -> dict:
        """
        Return a validated JSON-LD dict for `product` written in `brand_voice`.

        Any transport error, non-JSON answer or schema mismatch is raised as
        GenerationFailure.
        """
        payload = {
            'model': self._model,
            'response_format': {'type': 'json_object'},
            'messages': [
                {'role': 'system', 'content': build_system_prompt(brand_voice)},
                {'role': 'user', 'content': build_user_prompt(product)},
            ],
        }
        url = f"{self._base_url}/chat/completions"

        try:
            response = self._request_with_retry('POST', url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise GenerationFailure(f"Generation request failed: {exc}") from exc

        content = self._extract_content(response)
        try:
            generated = json.loads(content)
        except (TypeError, ValueError) as exc:
            raise GenerationFailure(f"Generator returned malformed JSON: {exc}") from exc

        schema = validate_schema(generated)
        logger.info("Generated schema for product %s.", product.product_id)
        return schema

    def close(self):
        self._session.close()

    def _request_with_retry(self, method: str, url: str, **kwargs) -> requests.Response:
        backoff = 1.0
        for attempt in range(1, self._max_retries + 1):
            self._rate_limiter.acquire()
            response = self._session.request(method, url, **kwargs)

            if response.status_code == 429:
                retry_after = self._parse_retry_after(response)
                wait = retry_after if retry_after is not None else backoff
                logger.warning(
                    "429 Too Many Requests (attempt %d/%d). Waiting %.1fs before retry.",
                    attempt, self._max_retries, wait,
                )
                time.sleep(wait)
                backoff *= 2
                continue

            response.raise_for_status()
            return response

        raise GenerationFailure(
            f"API request {method} {url} failed after {self._max_retries} retries due to rate limiting."
        )

    @staticmethod
    def _extract_content(response: requests.Response):
        try:
            return response.json()['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise GenerationFailure(f"Unexpected completion response shape: {exc!r}") from exc

    @staticmethod
    def _parse_retry_after(response: requests.Response):
        """Return float seconds from Retry-After header, or None if absent/invalid."""
        header = response.headers.get('Retry-After')
        if header is None:
            return None
        try:
            return float(header)
        except (TypeError, ValueError):
            return None
