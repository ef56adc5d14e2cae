"""
AIService - AI Habit Coaching

Builds prompts from the user's habits and completion history and asks an
OpenAI chat model for structured (JSON mode) coaching content.

Provider calls are retried on transient errors and guarded by the
ai_provider circuit breaker; failures surface as AIServiceError (502).
"""

import asyncio
import json
import logging
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx
import openai
import pybreaker
from openai import AsyncOpenAI

from habitforge.config import AI_MAX_TOKENS, AI_MODEL, AI_TIMEOUT_SECONDS, OPENAI_API_KEY
from habitforge.db import queries
from habitforge.exceptions import (
    AIServiceError,
    AuthorizationError,
    ConfigurationError,
    ExternalAPIError,
    RecordNotFoundError,
    ValidationError,
    wrap_external_exception,
)
from habitforge.gamification import get_level_info
from habitforge.models.user import User
from habitforge.monitoring import track_ai_request, track_ai_tokens
from habitforge.resilience import (
    AI_BREAKER,
    breaker_state,
    record_api_call,
    retry_with_backoff,
    with_circuit_breaker,
)
from habitforge.utils.datetime_helpers import now_utc, today_in_timezone

logger = logging.getLogger(__name__)

PROVIDER = "openai"
HISTORY_DAYS = 30
PATTERN_COMPLETIONS = 100
MIN_PATTERN_COMPLETIONS = 5
MOTIVATION_CONTEXTS = ("daily", "streak", "struggle", "milestone", "coaching")

SYSTEM_PROMPT = (
    "You are a supportive, practical habit coach. Base every statement on the "
    "data you are given, keep advice concrete and achievable, and always reply "
    "with a single valid JSON object."
)


class AIService:
    """
    Service for AI coaching features.

    Responsibilities:
    - Habit insights, suggestions, pattern analysis
    - Motivational content and personalized coaching
    - Habit optimization (patterns + insights)
    - Provider status
    """

    def __init__(self, db_connection, client: Optional[AsyncOpenAI] = None):
        self.db = db_connection
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(OPENAI_API_KEY)

    def _get_client(self) -> AsyncOpenAI:
        if not self.configured:
            raise ConfigurationError(
                message="OPENAI_API_KEY is not set",
                config_key="OPENAI_API_KEY",
            )
        if self._client is None:
            # Retries are handled by retry_with_backoff
            self._client = AsyncOpenAI(
                api_key=OPENAI_API_KEY,
                timeout=AI_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._client

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    async def _create_completion(self, messages: List[Dict[str, str]], temperature: float):
        return await self._get_client().chat.completions.create(
            model=AI_MODEL,
            messages=messages,
            temperature=temperature,
            max_tokens=AI_MAX_TOKENS,
            response_format={"type": "json_object"},  # Force JSON output
        )

    @with_circuit_breaker(AI_BREAKER)
    async def _call_provider(self, messages: List[Dict[str, str]], temperature: float):
        return await retry_with_backoff(
            self._create_completion, messages, temperature, api_name=PROVIDER
        )

    async def _request_json(
        self,
        feature: str,
        prompt: str,
        user_id: str,
        temperature: float = 0.7
    ) -> Dict[str, Any]:
        """
        Send a prompt and parse the JSON object the model returns.

        Raises:
            ConfigurationError: No API key configured
            AIServiceError: Provider failure, open circuit or malformed reply
        """
        self._get_client()
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        start = time.time()
        with track_ai_request(feature):
            try:
                response = await self._call_provider(messages, temperature)
            except pybreaker.CircuitBreakerError as e:
                record_api_call(PROVIDER, success=False, duration=time.time() - start)
                raise AIServiceError(
                    message="AI provider circuit is open",
                    user_id=user_id,
                    operation=f"ai_{feature}",
                    cause=e,
                )
            except (openai.OpenAIError, httpx.HTTPError) as e:
                record_api_call(PROVIDER, success=False, duration=time.time() - start)
                raise wrap_external_exception(e, operation=f"ai_{feature}", user_id=user_id)

            record_api_call(PROVIDER, success=True, duration=time.time() - start)

            if response.usage:
                track_ai_tokens(response.usage.prompt_tokens, response.usage.completion_tokens)

            content = (response.choices[0].message.content or "").strip()
            try:
                data = json.loads(content)
            except json.JSONDecodeError as e:
                raise AIServiceError(
                    message=f"AI provider returned invalid JSON for {feature}",
                    user_id=user_id,
                    operation=f"ai_{feature}",
                    cause=e,
                )

        if not isinstance(data, dict):
            raise AIServiceError(
                message=f"AI provider returned a non-object reply for {feature}",
                user_id=user_id,
                operation=f"ai_{feature}",
            )

        logger.info(f"Generated AI {feature} for user {user_id}")
        return data

    @staticmethod
    def _result(data: Dict[str, Any]) -> Dict[str, Any]:
        return {"data": data, "generated_at": now_utc().isoformat()}

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def _load_user(self, user_id: str) -> User:
        """Load the user and check they allow AI processing of their data"""
        row = await queries.get_user(user_id)
        if not row:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )

        user = User.model_validate(row)
        if not user.allows_ai():
            raise AuthorizationError(
                message="User has opted out of AI features",
                resource="AI coaching",
                user_id=user_id,
            )
        return user

    async def _habit_context(self, user: User) -> Dict[str, Any]:
        """Active habits and the last 30 days of activity, as prompt context"""
        user_id = str(user.id)
        today = today_in_timezone(user.timezone)
        start = today - timedelta(days=HISTORY_DAYS - 1)

        habits = await queries.list_habits(user_id, active=True, archived=False)
        daily = await queries.get_daily_completion_counts(user_id, start, today)

        return {
            "level": get_level_info(user.total_xp),
            "habits": [
                {
                    "id": str(h["id"]),
                    "name": h["name"],
                    "category": h["category"],
                    "frequency": h["frequency"],
                    "current_streak": h["current_streak"],
                    "longest_streak": h["longest_streak"],
                    "consistency_rate": h["consistency_rate"],
                    "total_completions": h["total_completions"],
                }
                for h in habits
            ],
            "daily_completions": {row["day"].isoformat(): row["completions"] for row in daily},
            "today": today.isoformat(),
        }

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    async def get_insights(self, user_id: str) -> Dict[str, Any]:
        """Overall progress insights with per-habit recommendations"""
        user = await self._load_user(user_id)
        context = await self._habit_context(user)

        prompt = f"""Analyze this user's habit data from the last {HISTORY_DAYS} days:

{json.dumps(context, default=str)}

Return valid JSON only:
{{
  "summary": "two or three sentence overview of their progress",
  "strengths": ["what is going well"],
  "areas_for_improvement": ["what needs attention"],
  "habit_recommendations": [
    {{
      "habit_id": "id from the data or null",
      "type": "optimize/maintain/add/reduce",
      "recommendation": "concrete advice",
      "priority": "high/medium/low"
    }}
  ],
  "weekly_focus": "one thing to focus on this week"
}}
"""
        data = await self._request_json("insights", prompt, user_id, temperature=0.5)
        return self._result(data)

    async def get_suggestions(
        self,
        user_id: str,
        goals: Optional[List[str]] = None,
        preferences: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """New habit suggestions for the user's goals"""
        user = await self._load_user(user_id)
        context = await self._habit_context(user)
        existing = [h["name"] for h in context["habits"]]

        prompt = f"""Suggest new habits for this user.

Goals: {json.dumps(goals or [])}
Preferences: {json.dumps(preferences or {})}
Existing habits (do not repeat these): {json.dumps(existing)}
Current level: {context["level"]["current_level"]}

IMPORTANT:
- Suggest 3 to 5 habits
- Prefer small habits that take under 15 minutes
- Category must be one of: health, fitness, productivity, learning, mindfulness, social, creativity, finance, other

Return valid JSON only:
{{
  "suggestions": [
    {{
      "name": "short habit name",
      "description": "what to do",
      "category": "category",
      "frequency": "daily/weekly",
      "difficulty": 1-5,
      "reason": "why this helps their goals"
    }}
  ]
}}
"""
        data = await self._request_json("suggestions", prompt, user_id)
        return self._result(data)

    async def analyze_patterns(self, user_id: str, habit_id: str) -> Dict[str, Any]:
        """
        Completion pattern analysis for one habit.

        Raises:
            RecordNotFoundError: Unknown habit
            ValidationError: Fewer than 5 completions to analyze
        """
        await self._load_user(user_id)
        habit = await queries.get_habit(user_id, habit_id)
        if not habit:
            raise RecordNotFoundError(
                message=f"Habit {habit_id} not found for user {user_id}",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id,
            )

        completions = await queries.get_habit_completions(habit_id, limit=PATTERN_COMPLETIONS)
        if len(completions) < MIN_PATTERN_COMPLETIONS:
            raise ValidationError(
                message=f"At least {MIN_PATTERN_COMPLETIONS} completions are needed to analyze patterns",
                field="habit_id",
                value=habit_id,
            )

        history = [
            {
                "date": c["completion_date"].isoformat(),
                "completed_at": c["completed_at"].isoformat(),
                "timezone": c["device_timezone"],
                "mood": c["mood"],
                "difficulty": c["difficulty"],
                "duration": c["duration"],
                "forgiveness_used": c["forgiveness_used"],
            }
            for c in completions
        ]

        prompt = f"""Analyze the completion pattern of the habit "{habit["name"]}" ({habit["category"]}, {habit["frequency"]}).

Current streak: {habit["current_streak"]}, longest streak: {habit["longest_streak"]}
Completions (newest first):
{json.dumps(history)}

Return valid JSON only:
{{
  "best_days": ["weekday names"],
  "best_time_of_day": "morning/afternoon/evening/night",
  "consistency_trend": "improving/stable/declining",
  "observations": ["pattern you noticed"],
  "recommendations": [
    {{
      "type": "optimize",
      "recommendation": "concrete advice",
      "priority": "high/medium/low"
    }}
  ]
}}
"""
        data = await self._request_json("patterns", prompt, user_id, temperature=0.3)
        data["habit_id"] = habit_id
        return self._result(data)

    async def get_motivation(self, user_id: str, context: str = "daily") -> Dict[str, Any]:
        """Motivational message for a context (daily, streak, struggle, milestone, coaching)"""
        if context not in MOTIVATION_CONTEXTS:
            raise ValidationError(
                message=f"Context must be one of: {', '.join(MOTIVATION_CONTEXTS)}",
                field="context",
                value=context,
            )

        user = await self._load_user(user_id)
        data = await self._request_json(
            "motivation", await self._motivation_prompt(user, context), user_id, temperature=0.9
        )
        return self._result(data)

    async def _motivation_prompt(self, user: User, context: str, challenge: Optional[str] = None) -> str:
        habit_context = await self._habit_context(user)
        streaks = {h["name"]: h["current_streak"] for h in habit_context["habits"]}
        challenge_line = f"\nThe user says they are struggling with: {challenge}\n" if challenge else ""

        return f"""Write motivational content for {user.name}.

Context: {context}
Level: {habit_context["level"]["current_level"]} ({habit_context["level"]["title"]})
Current streaks: {json.dumps(streaks)}
{challenge_line}
Keep it warm and specific to their data, no more than 80 words in the message.

Return valid JSON only:
{{
  "message": "the motivational message",
  "tips": ["short actionable tip"],
  "affirmation": "one sentence affirmation"
}}
"""

    async def get_coaching(
        self,
        user_id: str,
        challenge: Optional[str] = None,
        context: Optional[str] = None
    ) -> Dict[str, Any]:
        """Coaching for a specific challenge, built on motivational content"""
        challenge = challenge or "Stay consistent with your habits"
        user = await self._load_user(user_id)
        prompt = await self._motivation_prompt(user, context or "coaching", challenge=challenge)

        data = await self._request_json("coaching", prompt, user_id, temperature=0.8)
        data.update({"challenge": challenge, "coaching_type": "personalized"})
        return self._result(data)

    async def get_optimization(self, user_id: str, habit_id: str) -> Dict[str, Any]:
        """
        Combine pattern analysis and insights into recommendations for one habit.

        Either half may fail on its own (provider error, too little data);
        it is then returned as None and contributes no recommendations.
        """
        await self._load_user(user_id)
        if not await queries.get_habit(user_id, habit_id):
            raise RecordNotFoundError(
                message=f"Habit {habit_id} not found for user {user_id}",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id,
            )

        results = await asyncio.gather(
            self.analyze_patterns(user_id, habit_id),
            self.get_insights(user_id),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, (ExternalAPIError, ValidationError)):
                raise result

        patterns, insights = (
            None if isinstance(r, BaseException) else r["data"] for r in results
        )

        recommendations = []
        if patterns is not None and insights is not None:
            recommendations = list(patterns.get("recommendations") or []) + [
                rec for rec in insights.get("habit_recommendations") or []
                if rec.get("habit_id") == habit_id or rec.get("type") == "optimize"
            ]

        return self._result({
            "patterns": patterns,
            "insights": insights,
            "recommendations": recommendations,
        })

    def get_status(self) -> Dict[str, Any]:
        """Provider configuration and circuit breaker state"""
        state = breaker_state(AI_BREAKER)
        return {
            "configured": self.configured,
            "model": AI_MODEL,
            "circuit_state": state,
            "available": self.configured and state != pybreaker.STATE_OPEN,
        }
