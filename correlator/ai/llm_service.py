"""LLM service for OpenAI integration."""

import hashlib
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis
from openai import AsyncOpenAI, OpenAIError
from redis.exceptions import RedisError

from correlator import metrics
from correlator.config import settings
from correlator.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class LLMService:
    """
    Single-turn completions against OpenAI.

    Features:
    - Optional Redis cache keyed on prompt + model + token budget
    - Daily cost guard, reset at the UTC day boundary
    - Provider errors surfaced as UpstreamUnavailable
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        cache_enabled: Optional[bool] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.llm_model
        self.cache_enabled = settings.llm_cache_enabled if cache_enabled is None else cache_enabled
        self._client = client
        self._redis: Optional[redis.Redis] = None
        self._daily_cost: float = 0.0
        self._call_count: int = 0
        self._cost_day: date = self._today()

    @staticmethod
    def _today() -> date:
        return datetime.now(timezone.utc).date()

    def _get_client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            if not self.api_key:
                raise UpstreamUnavailable("OpenAI API key not configured")
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    def _get_redis(self) -> Optional[redis.Redis]:
        """Get or create Redis connection for caching."""
        if not self.cache_enabled:
            return None
        if self._redis is None:
            self._redis = redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    def _get_cache_key(self, prompt: str, system_prompt: str, model: str, max_tokens: int) -> str:
        """Generate cache key for prompt."""
        combined = f"{system_prompt}:{prompt}:{model}:{max_tokens}"
        key_hash = hashlib.sha256(combined.encode('utf-8')).hexdigest()
        return f"llm_cache:{key_hash}"

    async def _cache_get(self, key: str) -> Optional[str]:
        client = self._get_redis()
        if client is None:
            return None
        try:
            return await client.get(key)
        except RedisError as e:
            logger.warning(f"LLM cache read failed, disabling cache: {e}")
            self.cache_enabled = False
            return None

    async def _cache_set(self, key: str, value: str):
        client = self._get_redis()
        if client is None:
            return
        try:
            await client.setex(key, settings.llm_cache_ttl_seconds, value)
        except RedisError as e:
            logger.warning(f"LLM cache write failed, disabling cache: {e}")
            self.cache_enabled = False

    def _check_cost_limit(self) -> bool:
        """Check if daily cost limit is exceeded, rolling the budget over at UTC midnight."""
        today = self._today()
        if today != self._cost_day:
            logger.info(f"New cost day {today}, previous spend ${self._daily_cost:.2f}")
            self.reset_daily_stats()
            self._cost_day = today
        if not settings.track_llm_costs:
            return True
        if self._daily_cost >= settings.llm_cost_limit_per_day:
            logger.warning(
                f"Daily LLM cost limit reached: ${self._daily_cost:.2f} >= ${settings.llm_cost_limit_per_day:.2f}"
            )
            return False
        return True

    def _estimate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        """
        Estimate cost for an LLM call.

        Pricing (approximate, per 1K tokens):
        - gpt-4o-mini: $0.00015 input, $0.0006 output
        - gpt-4o / gpt-4*: $0.005 input, $0.015 output
        """
        if "mini" in model.lower():
            return (prompt_tokens / 1000) * 0.00015 + (completion_tokens / 1000) * 0.0006
        if "gpt-4" in model.lower():
            return (prompt_tokens / 1000) * 0.005 + (completion_tokens / 1000) * 0.015
        return (prompt_tokens / 1000) * 0.0015 + (completion_tokens / 1000) * 0.002

    async def complete(
        self,
        prompt: str,
        system_prompt: str = "",
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        use_cache: bool = True,
        cacheable: Optional[Callable[[str], bool]] = None,
    ) -> str:
        """
        Run a single-turn completion and return the reply text.

        Args:
            prompt: User prompt
            system_prompt: System instructions
            max_tokens: Reply budget (defaults to settings.llm_max_tokens)
            temperature: Sampling temperature (defaults to settings.llm_temperature)
            use_cache: Whether to read/write the Redis cache
            cacheable: Optional check a reply must pass before it is cached

        Raises:
            UpstreamUnavailable: If the provider call fails or the cost limit is hit
        """
        max_tokens = max_tokens or settings.llm_max_tokens
        temperature = temperature if temperature is not None else settings.llm_temperature

        if not self._check_cost_limit():
            raise UpstreamUnavailable("Daily LLM cost limit exceeded")

        cache_key = self._get_cache_key(prompt, system_prompt, self.model, max_tokens)
        if use_cache:
            cached = await self._cache_get(cache_key)
            if cached is not None:
                logger.debug(f"LLM cache hit for prompt: {prompt[:50]}...")
                self._call_count += 1
                return cached

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=settings.llm_timeout_seconds,
            )
        except OpenAIError as e:
            logger.error(f"LLM API call failed: {e}")
            raise UpstreamUnavailable(f"LLM call failed: {e}") from e

        result = response.choices[0].message.content or ""

        if settings.track_llm_costs and response.usage is not None:
            cost = self._estimate_cost(
                self.model,
                response.usage.prompt_tokens,
                response.usage.completion_tokens,
            )
            self._daily_cost += cost
            metrics.record_llm_cost(self.model, cost)
            logger.debug(f"LLM call cost: ${cost:.4f} (total: ${self._daily_cost:.2f})")

        self._call_count += 1

        if use_cache and result and (cacheable is None or cacheable(result)):
            await self._cache_set(cache_key, result)

        return result

    def get_stats(self) -> Dict[str, Any]:
        """Call count, daily cost and cache state."""
        return {
            "call_count": self._call_count,
            "daily_cost": self._daily_cost,
            "cost_limit": settings.llm_cost_limit_per_day,
            "cache_enabled": self.cache_enabled,
            "model": self.model,
        }

    def reset_daily_stats(self):
        """Reset daily cost and call count."""
        self._daily_cost = 0.0
        self._call_count = 0
        logger.info("LLM daily stats reset")

    async def close(self):
        """Close connections."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
        if self._client:
            await self._client.close()
            self._client = None
