"""Pure transcript analysis used by conversation discovery.

Each helper takes a transcript (list of ConversationMessage, oldest first)
and derives one metadata field. None of them touch the database.
"""
import re
from typing import Optional, Sequence

from schemas.conversation import ConversationMessage

POSITIVE_KEYWORDS = (
    "thank", "great", "excellent", "perfect", "amazing", "helpful", "appreciate", "wonderful",
)
NEGATIVE_KEYWORDS = (
    "terrible", "awful", "bad", "horrible", "useless", "disappointed", "frustrated", "angry",
)

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def _keyword_hits(text: str, keywords: Sequence[str]) -> int:
    return sum(
        1 for k in keywords if re.search(r"\b" + re.escape(k) + r"(?:s|d|ed|ful|ing)?\b", text)
    )


def analyze_sentiment(transcript: Sequence[ConversationMessage]) -> str:
    """Keyword vote over the whole transcript: 'positive', 'negative' or 'neutral'."""
    content = " ".join(m.content.lower() for m in transcript)
    positive = _keyword_hits(content, POSITIVE_KEYWORDS)
    negative = _keyword_hits(content, NEGATIVE_KEYWORDS)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def calculate_duration(transcript: Sequence[ConversationMessage]) -> int:
    """Seconds between the first and last message; 0 for fewer than two messages."""
    if len(transcript) < 2:
        return 0
    delta = transcript[-1].timestamp - transcript[0].timestamp
    return max(int(delta.total_seconds()), 0)


def extract_customer_email(transcript: Sequence[ConversationMessage]) -> Optional[str]:
    """First e-mail address written by the user, if any."""
    for message in transcript:
        if message.role != "user":
            continue
        match = EMAIL_RE.search(message.content)
        if match:
            return match.group(0)
    return None


def mask_email(email: Optional[str]) -> Optional[str]:
    """'jane.doe@example.com' -> 'j***@example.com', for log output."""
    if not email or "@" not in email:
        return email
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"
