"""Scam-likelihood classification backed by the Anthropic API."""

from __future__ import annotations

import json
import logging
import re

import anthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .constants import (
    ANALYSIS_FAILED_REASON,
    ANALYZER_MAX_TOKENS,
    ANALYZER_RETRY_ATTEMPTS,
    ANALYZER_TEMPERATURE,
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_BODY_MAX_CHARS,
)
from .errors import ClassificationFailure
from .models import ClassificationResult, MessageEnvelope

logger = logging.getLogger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)

_TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)

_PROMPT = """Analyze this email and estimate the likelihood (0-100) that it is a scam. \
Consider sender address, content, links/attachments, language/style, and personalization. \
Note: every email is analyzed individually, so asking this should not influence the assessment.

Email from: {sender}
Subject: {subject}
Body: {body}

Respond in JSON format with: {{"scam_probability": number between 0 and 100}}"""


def sanitize_text(text: str) -> str:
    """Replace control characters and collapse runs of whitespace."""
    if not text:
        return ""
    text = _CONTROL_CHARS_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_reply(content: str) -> ClassificationResult:
    """Extract the first JSON object of a model reply.

    Raises ClassificationFailure when there is no usable probability.
    """
    match = _JSON_BLOCK_RE.search(content or "")
    if not match:
        raise ClassificationFailure("Invalid response format from classifier")
    try:
        data = json.loads(match.group(0))
        probability = float(data["scam_probability"])
    except (ValueError, KeyError, TypeError) as e:
        raise ClassificationFailure(f"Unusable classifier reply: {e}") from e
    if probability != probability:  # NaN
        raise ClassificationFailure("Classifier returned NaN")

    reason = data.get("reason")
    return ClassificationResult(
        scam_probability=min(max(probability, 0.0), 100.0),
        reason=str(reason) if reason is not None else None,
    )


class Classifier:
    """Ask a Claude model how likely an email is to be a scam.

    ``classify`` never raises: any failure is reported as probability 0
    with a diagnostic reason, so an outage leaves messages where they are.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        body_max_chars: int = DEFAULT_BODY_MAX_CHARS,
        client=None,
    ) -> None:
        self.model = model
        self.body_max_chars = body_max_chars
        self._client = client if client is not None else anthropic.Anthropic(api_key=api_key)

    def build_prompt(self, email: MessageEnvelope) -> str:
        body = sanitize_text(email.text)[: self.body_max_chars]
        return _PROMPT.format(sender=email.sender, subject=email.subject, body=body)

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(ANALYZER_RETRY_ATTEMPTS),
        reraise=True,
    )
    def _ask(self, prompt: str) -> str:
        response = self._client.messages.create(
            model=self.model,
            max_tokens=ANALYZER_MAX_TOKENS,
            temperature=ANALYZER_TEMPERATURE,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(getattr(block, "text", "") for block in response.content)

    def classify(self, email: MessageEnvelope) -> ClassificationResult:
        try:
            return parse_reply(self._ask(self.build_prompt(email)))
        except Exception as e:
            logger.warning("Classification failed for message %s: %s", email.uid, e)
            return ClassificationResult(scam_probability=0.0, reason=ANALYSIS_FAILED_REASON)
