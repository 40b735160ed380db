"""
Topic extraction for noisy typed or transcribed input.

Tiers, cheapest first:
1. Curated keyword phrases, including common transcription near-misses
2. Ordinal / number replies to the spoken topic menu
3. Claude restricted to the five topic labels (TopicClassifier)
4. Loose substring stems, only after repeated failures
"""

import logging
import re
from typing import Optional

from app.config import settings
from app.infra.claude import (
    ClaudeClient,
    ClaudeClientError,
    get_claude_client,
    parse_json_content,
)
from .text import normalize_text
from .types import Topic

logger = logging.getLogger(__name__)


TOPIC_KEYWORDS: list[tuple[Topic, re.Pattern]] = [
    (
        Topic.KYC_ONBOARDING,
        re.compile(
            r"\bkyc\b|\bk\.?\s?y\.?\s?c\b|\bkeyc\b|kay see|kay c\b|key see"
            r"|onboarding|\bonboard|on board|on-board"
        ),
    ),
    (Topic.SIP_MANDATES, re.compile(r"\bsips?\b|\bs i p\b|mandate")),
    (
        Topic.STATEMENTS_TAX_DOCS,
        re.compile(r"statement|\btax\b|\bdocs?\b|document"),
    ),
    (Topic.WITHDRAWALS_TIMELINES, re.compile(r"withdraw|timeline")),
    (
        Topic.ACCOUNT_CHANGES_NOMINEE,
        re.compile(r"\baccount\b|\bchanges?\b|nominee|\bupdate"),
    ),
]

# Loose stems for the last-resort pass; transcription often mangles "KYC"
FUZZY_TOPIC_STEMS: list[tuple[Topic, re.Pattern]] = [
    (Topic.KYC_ONBOARDING, re.compile(r"\b(kyc|key|kay|see|cee)\b|onboard|on board")),
    (Topic.SIP_MANDATES, re.compile(r"sip|mandate")),
    (Topic.STATEMENTS_TAX_DOCS, re.compile(r"statement|tax|doc")),
    (Topic.WITHDRAWALS_TIMELINES, re.compile(r"withdraw|timeline")),
    (Topic.ACCOUNT_CHANGES_NOMINEE, re.compile(r"account|change|nominee")),
]

_ORDINALS: dict[int, tuple[str, ...]] = {
    1: ("first", "1st"),
    2: ("second", "2nd"),
    3: ("third", "3rd"),
    4: ("fourth", "4th"),
    5: ("fifth", "5th"),
}

_CARDINALS: dict[int, tuple[str, ...]] = {
    1: ("one", "1"),
    2: ("two", "2"),
    3: ("three", "3"),
    4: ("four", "4"),
    5: ("five", "5"),
}

# Only trusted when they are the entire reply ("to" is usually just "to")
_HOMOPHONES: dict[int, tuple[str, ...]] = {
    1: ("won", "wun"),
    2: ("to", "too"),
    3: ("tree", "free"),
    4: ("for", "fore"),
}

_FILLER = {"option", "number", "topic", "the", "please", "um", "uh", "its", "it", "is", "s"}
_TOKEN = re.compile(r"[a-z0-9]+")


def extract_topic_by_keywords(text: str) -> Optional[Topic]:
    """Match curated topic phrases."""
    normalized = normalize_text(text)
    if not normalized:
        return None
    for topic, pattern in TOPIC_KEYWORDS:
        if pattern.search(normalized):
            return topic
    return None


def extract_topic_by_ordinal(text: str) -> Optional[Topic]:
    """Map "one", "2", "the third", "option five" and similar to a topic."""
    tokens = _TOKEN.findall(normalize_text(text))
    if not tokens:
        return None

    for table in (_ORDINALS, _CARDINALS):
        for position, words in table.items():
            if any(word in tokens for word in words):
                return Topic.from_position(position)

    meaningful = [token for token in tokens if token not in _FILLER]
    if len(meaningful) == 1:
        for position, words in _HOMOPHONES.items():
            if meaningful[0] in words:
                return Topic.from_position(position)

    return None


def extract_topic(text: str) -> Optional[Topic]:
    """Deterministic topic extraction: keywords, then ordinals."""
    return extract_topic_by_keywords(text) or extract_topic_by_ordinal(text)


def extract_topic_fuzzy(text: str, failed_attempts: int) -> Optional[Topic]:
    """Aggressive substring matching for callers stuck in the topic step.

    Args:
        text: Caller utterance
        failed_attempts: Topic attempts that already failed this session

    Returns:
        Topic or None. Always None before the configured failure threshold.
    """
    if failed_attempts < settings.topic_fuzzy_after_failures:
        return None

    normalized = normalize_text(text)
    for topic, pattern in FUZZY_TOPIC_STEMS:
        if pattern.search(normalized):
            logger.info(f"Fuzzy topic match after {failed_attempts} failures: {topic.value}")
            return topic
    return None


TOPIC_PROMPT = """A caller is choosing the topic for a consultation with a financial advisor.
Their reply may be a speech transcription with errors.

Topics:
1. KYC/Onboarding
2. SIP/Mandates
3. Statements/Tax Docs
4. Withdrawals & Timelines
5. Account Changes/Nominee

Caller reply: "{message}"

Respond with ONLY valid JSON:
{{"topic": "<one of the five topic names exactly as written, or null>"}}"""


class TopicClassifier:
    """Claude-assisted topic matching restricted to the five labels."""

    def __init__(self, claude_client: Optional[ClaudeClient] = None):
        """Initialize classifier.

        Args:
            claude_client: Optional Claude client (for testing)
        """
        self._client = claude_client

    async def _get_client(self) -> Optional[ClaudeClient]:
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def classify(self, text: str) -> Optional[Topic]:
        """Ask Claude which topic the caller meant.

        Returns None when the remote tier is unavailable, fails, or answers
        with anything outside the topic list.
        """
        text = text.strip()
        if not text:
            return None

        client = await self._get_client()
        if client is None:
            return None

        try:
            response = await client.generate(
                prompt=TOPIC_PROMPT.format(message=text[:500]),
                max_tokens=50,
                temperature=0,
            )
            data = parse_json_content(response.content)
        except ClaudeClientError as e:
            logger.warning(f"Topic classification unavailable: {e}")
            return None

        label = data.get("topic")
        if not isinstance(label, str):
            return None

        for topic in Topic:
            if topic.value.lower() == label.strip().lower():
                return topic

        logger.debug(f"Ignoring out-of-set topic label: {label}")
        return None
