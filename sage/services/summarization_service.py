"""Service for summarizing finished conversations with the LLM provider."""

import json
import logging
import re
from typing import Any
from uuid import UUID

from openai import APIStatusError, AuthenticationError, OpenAIError

from sage.core.config import get_settings
from sage.core.openai import TimedLLMClient, get_llm_client
from sage.models.insight import InsightType, UserInsightCategory
from sage.models.message import MessageRole
from sage.schemas.insights import SessionInsightsResult
from sage.schemas.lifecycle import SummaryResult, TranscriptEntry
from sage.services.conversation_service import ConversationService
from sage.services.credit_service import (
    CreditService,
    calculate_credits_used,
    estimate_tokens,
)
from sage.services.lifecycle_errors import (
    LifecycleConfigurationError,
    SummarizationError,
)
from sage.services.summarization_prompts import (
    ASSISTANT_LABEL,
    INSIGHTS_PROMPT,
    PROFILE_PROMPT,
    SUMMARIZE_SYSTEM_PROMPT,
    SUMMARIZE_USER_PROMPT,
    USER_LABEL,
)

logger = logging.getLogger(__name__)

# Greedy: from the first "{" to the last "}", across lines
_JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

_INSIGHT_TYPES = {t.value for t in InsightType}
_PATTERN_CATEGORIES = {c.value for c in UserInsightCategory}

MIN_MESSAGES_TO_SUMMARIZE = 2


def render_transcript(messages: list[dict[str, Any]]) -> str:
    """Render stored messages as labelled blocks separated by blank lines."""
    blocks = []
    for message in messages:
        label = USER_LABEL if message.get("role") == MessageRole.USER.value else ASSISTANT_LABEL
        blocks.append(f"{label}: {message.get('content', '')}")
    return "\n\n".join(blocks)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Parse the first-brace-to-last-brace span of text as a JSON object.

    Returns None when there is no such span, it is not valid JSON, or it
    does not decode to an object.
    """
    match = _JSON_OBJECT_PATTERN.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _clamp_confidence(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return min(max(float(value), 0.0), 1.0)


def _coerce_insights(raw: Any) -> list[dict[str, Any]]:
    insights = []
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, str):
            item = {"content": item}
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        insight_type = item.get("type")
        if insight_type not in _INSIGHT_TYPES:
            insight_type = InsightType.REALIZATION.value
        insights.append({"content": content.strip(), "type": insight_type})
    return insights


def _coerce_patterns(raw: Any) -> list[dict[str, Any]]:
    patterns = []
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, str):
            item = {"content": item}
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        category = item.get("category")
        if category not in _PATTERN_CATEGORIES:
            category = UserInsightCategory.PATTERN.value
        patterns.append(
            {
                "content": content.strip(),
                "category": category,
                "confidence": _clamp_confidence(item.get("confidence")),
            }
        )
    return patterns


def parse_summary_response(content: str) -> dict[str, Any]:
    """Turn a raw model reply into summary, insights and user patterns.

    A reply without a parseable JSON object is kept whole as the summary,
    with no insights or patterns. Malformed list entries are dropped and
    unknown insight types or pattern categories fall back to their defaults.
    """
    parsed = extract_json_object(content)
    if parsed is None:
        logger.warning("Summary response contained no JSON object, storing raw text")
        return {"summary": content, "insights": [], "userPatterns": []}

    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = content

    return {
        "summary": summary,
        "insights": _coerce_insights(parsed.get("insights")),
        "userPatterns": _coerce_patterns(parsed.get("userPatterns")),
    }


def _string_list(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [item.strip() for item in raw if isinstance(item, str) and item.strip()]


def parse_insights_response(content: str) -> dict[str, Any]:
    """Turn a raw model reply into a session summary, key points and reflections.

    A reply without a parseable JSON object is kept whole as the summary.
    """
    parsed = extract_json_object(content)
    if parsed is None:
        logger.warning("Insights response contained no JSON object, returning raw text")
        return {"summary": content, "keyPoints": [], "reflections": []}

    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = content

    return {
        "summary": summary,
        "keyPoints": _string_list(parsed.get("keyPoints")),
        "reflections": _string_list(parsed.get("reflections")),
    }


def _message_id(message: dict[str, Any]) -> str | None:
    return str(message["id"]) if message.get("id") else None


def _first_choice_content(response: Any) -> str | None:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    return choices[0].message.content


class SummarizationService:
    """Service that turns a finished conversation into a summary and insights."""

    MIN_MESSAGES = MIN_MESSAGES_TO_SUMMARIZE

    def __init__(
        self,
        conversation_service: ConversationService | None = None,
        credit_service: CreditService | None = None,
        llm_client: TimedLLMClient | None = None,
    ) -> None:
        """Initialize summarization service.

        Args:
            conversation_service: Optional conversation service for testing.
            credit_service: Optional credit service for testing.
            llm_client: Optional LLM client for testing.
        """
        self.settings = get_settings()
        self.llm = llm_client or get_llm_client()
        self.conversation_service = conversation_service or ConversationService()
        self.credit_service = credit_service or CreditService()

    async def summarize(self, conversation_id: UUID, user_id: UUID) -> SummaryResult:
        """Summarize a conversation owned by a user.

        Args:
            conversation_id: The conversation to summarize.
            user_id: Its owner; conversations of other users are treated as
                missing.

        Returns:
            SummaryResult: Either a skip with its reason, or the summary,
            insights, user patterns and the credit and token cost.

        Raises:
            LifecycleConfigurationError: No provider credential is configured
                or the provider rejected it.
            SummarizationError: The provider failed or returned no content.
        """
        if not self.settings.has_llm_credentials:
            raise LifecycleConfigurationError("OPENROUTER_API_KEY not configured")

        if not await self.credit_service.has_enough_credits(
            user_id, self.settings.summary_min_credits
        ):
            logger.info("User %s has insufficient credits, skipping summary", user_id)
            return SummaryResult.skip("insufficient_credits")

        conversation = await self.conversation_service.get_conversation(conversation_id, user_id)
        messages = []
        if conversation:
            messages = await self.conversation_service.get_messages(conversation_id)

        if len(messages) < self.MIN_MESSAGES:
            logger.info(
                "Conversation %s has %d messages, not enough to summarize",
                conversation_id,
                len(messages),
            )
            return SummaryResult.skip("insufficient_messages")

        return await self.summarize_messages(conversation_id, messages)

    async def summarize_messages(
        self, conversation_id: UUID, messages: list[dict[str, Any]]
    ) -> SummaryResult:
        """Summarize already loaded messages, without balance or length checks.

        Raises:
            LifecycleConfigurationError: The provider rejected the API key.
            SummarizationError: The provider failed or returned no content.
        """
        transcript = render_transcript(messages)
        response = await self._complete(
            "summarize",
            [
                {"role": "system", "content": SUMMARIZE_SYSTEM_PROMPT},
                {"role": "user", "content": SUMMARIZE_USER_PROMPT.format(transcript=transcript)},
            ],
            max_tokens=self.settings.summary_max_tokens,
        )

        content = _first_choice_content(response)
        if not content:
            raise SummarizationError("No response from summarization provider")

        parsed = parse_summary_response(content)

        prompt_tokens, completion_tokens, credits_used = self._usage(response, transcript, content)

        logger.info(
            "Summarized conversation %s: %d insights, %d patterns, %d tokens, %d credits",
            conversation_id,
            len(parsed["insights"]),
            len(parsed["userPatterns"]),
            prompt_tokens + completion_tokens,
            credits_used,
        )

        return SummaryResult.model_validate(
            {
                **parsed,
                "creditsUsed": credits_used,
                "tokensUsed": prompt_tokens + completion_tokens,
                "lastMessageId": _message_id(messages[-1]),
            }
        )

    async def extract_session_insights(
        self, transcript: list[TranscriptEntry]
    ) -> SessionInsightsResult:
        """Extract a short summary, key points and open reflections from a transcript.

        Raises:
            LifecycleConfigurationError: The provider rejected the API key.
            SummarizationError: The provider failed or returned no content.
        """
        text = render_transcript([entry.model_dump(mode="json") for entry in transcript])
        response = await self._complete(
            "insights",
            [
                {"role": "system", "content": INSIGHTS_PROMPT},
                {"role": "user", "content": SUMMARIZE_USER_PROMPT.format(transcript=text)},
            ],
            max_tokens=self.settings.summary_max_tokens,
        )

        content = _first_choice_content(response)
        if not content:
            raise SummarizationError("No response from summarization provider")

        prompt_tokens, completion_tokens, credits_used = self._usage(response, text, content)
        return SessionInsightsResult.model_validate(
            {
                **parse_insights_response(content),
                "creditsUsed": credits_used,
                "tokensUsed": prompt_tokens + completion_tokens,
            }
        )

    async def generate_profile_paragraph(self, observations: list[str]) -> str | None:
        """Write a second-person profile paragraph from user observations.

        Returns:
            str | None: The trimmed paragraph, or None if the model returned
            nothing.
        """
        prompt = PROFILE_PROMPT.format(
            observations="\n".join(f"- {observation}" for observation in observations)
        )
        response = await self._complete(
            "profile_summary",
            [{"role": "user", "content": prompt}],
            max_tokens=self.settings.profile_max_tokens,
        )
        content = _first_choice_content(response)
        return content.strip() if content and content.strip() else None

    def _usage(self, response: Any, prompt_text: str, content: str) -> tuple[int, int, int]:
        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", None) or estimate_tokens(prompt_text)
        completion_tokens = getattr(usage, "completion_tokens", None) or estimate_tokens(content)
        credits_used = calculate_credits_used(
            prompt_tokens, completion_tokens, self.settings.tokens_per_credit
        )
        return prompt_tokens, completion_tokens, credits_used

    async def _complete(self, operation: str, messages: list[dict[str, str]], max_tokens: int) -> Any:
        try:
            return await self.llm.completions(operation).create(
                model=self.settings.summary_model,
                messages=messages,
                temperature=self.settings.summary_temperature,
                max_tokens=max_tokens,
            )
        except AuthenticationError as e:
            raise LifecycleConfigurationError(
                f"Summarization provider rejected the API key: {e.message}"
            ) from e
        except APIStatusError as e:
            raise SummarizationError(
                f"Summarization provider error: {e.status_code} - {e.message}",
                status_code=e.status_code,
            ) from e
        except OpenAIError as e:
            raise SummarizationError(f"Summarization provider error: {e}") from e
