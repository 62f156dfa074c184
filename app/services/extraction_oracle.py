"""
Extraction Oracle
Asks a language model for the authentication code or login link in an email.

The model is non-deterministic and its output is untrusted: whatever it
returns goes through validate_oracle_output() before it can be stored,
and SDK errors never leave extract().
"""
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import anthropic

from app.core.config import settings

logger = logging.getLogger(__name__)

NO_CODE_SENTINEL = "NONE"

# Phrases that mean the model answered in prose instead of returning a code
HEDGING_MARKERS = ("sorry", "i cannot", "i found")

SYSTEM_PROMPT = """You read emails and pull out one-time authentication codes and sign-in links.

Reply with the code or the complete link and nothing else: no explanation, no quotes, no formatting.
If the email has several candidates, reply with the one most likely used to sign in or verify.
If the email has no such code or link, reply with exactly NONE.

What counts:
- verification, security and OTP codes, usually 4 to 8 digits
- alphanumeric login or 2FA codes, usually 6 to 8 characters
- full URLs used to verify, confirm, log in, sign in or authenticate

Look closely at text following phrases such as "Your code is", "Your verification code is",
"Your one-time passcode is", "Enter this code" and "Use code".

Example replies:
482913
ABCD1234
https://example.com/verify?token=abc123
NONE"""


class OracleFailure(str, enum.Enum):
    """Why extract() returned no code"""
    NO_CODE = "no_code"                # the model answered NONE
    INVALID_OUTPUT = "invalid_output"  # the answer failed validation
    NOT_CONFIGURED = "not_configured"  # no API key
    UNAVAILABLE = "unavailable"        # the API call failed


@dataclass(frozen=True)
class OracleResult:
    code: Optional[str] = None
    failure: Optional[OracleFailure] = None

    @property
    def found(self) -> bool:
        return self.code is not None

    @property
    def is_transient(self) -> bool:
        """The message should be offered to the oracle again on a later tick"""
        return self.failure in (OracleFailure.NOT_CONFIGURED, OracleFailure.UNAVAILABLE)

    @classmethod
    def with_code(cls, code: str) -> "OracleResult":
        return cls(code=code)

    @classmethod
    def failed(cls, failure: OracleFailure) -> "OracleResult":
        return cls(failure=failure)


def validate_oracle_output(raw: Optional[str], max_length: int = None) -> OracleResult:
    """Turn raw model output into a code, or a reason there is none"""
    max_length = max_length or settings.ORACLE_MAX_CODE_LENGTH
    code = (raw or "").strip()

    if not code or code.upper() == NO_CODE_SENTINEL:
        return OracleResult.failed(OracleFailure.NO_CODE)

    lowered = code.lower()
    if len(code) > max_length or any(marker in lowered for marker in HEDGING_MARKERS):
        logger.info("Oracle returned invalid code format: %s...", code[:50])
        return OracleResult.failed(OracleFailure.INVALID_OUTPUT)

    return OracleResult.with_code(code)


class ExtractionOracle(ABC):
    """Finds a magic code in an email, or reports why it could not"""

    @abstractmethod
    def extract(self, subject: str, sender: str, body: str) -> OracleResult:
        ...


class ClaudeExtractionOracle(ExtractionOracle):
    """ExtractionOracle backed by the Anthropic messages API"""

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        max_tokens: int = None,
        body_char_limit: int = None,
        client: anthropic.Anthropic = None
    ):
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model = model or settings.ORACLE_MODEL
        self.max_tokens = max_tokens or settings.ORACLE_MAX_TOKENS
        self.body_char_limit = body_char_limit or settings.ORACLE_BODY_CHAR_LIMIT
        self._client = client

    def _get_client(self) -> Optional[anthropic.Anthropic]:
        """Get or create the Anthropic client"""
        if self._client is None and self.api_key:
            self._client = anthropic.Anthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def build_prompt(self, subject: str, sender: str, body: str) -> str:
        return f"Subject: {subject}\nFrom: {sender}\nBody: {(body or '')[:self.body_char_limit]}"

    def extract(self, subject: str, sender: str, body: str) -> OracleResult:
        client = self._get_client()
        if client is None:
            logger.error("ANTHROPIC_API_KEY is not set, cannot analyze emails")
            return OracleResult.failed(OracleFailure.NOT_CONFIGURED)

        try:
            message = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                system=SYSTEM_PROMPT,
                messages=[{
                    "role": "user",
                    "content": self.build_prompt(subject, sender, body)
                }],
            )
        except anthropic.APIError as e:
            logger.warning("Extraction oracle call failed: %s", e)
            return OracleResult.failed(OracleFailure.UNAVAILABLE)

        text = "".join(
            block.text for block in message.content
            if getattr(block, "type", None) == "text"
        )
        return validate_oracle_output(text)
