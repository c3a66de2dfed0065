"""Request fingerprinting and near-duplicate scoring."""

import hashlib
import re
from typing import FrozenSet, Iterable, List

from ..models.cache_models import Fingerprint
from ..models.llm_models import CompletionRequest, Message

_WHITESPACE = re.compile(r"\s+")
_TOKEN = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")

# Function words carry no topic signal for similarity
STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "if", "of", "to", "in", "on",
    "for", "with", "at", "by", "from", "as", "is", "are", "was", "were",
    "be", "been", "do", "does", "did", "can", "could", "should", "would",
    "will", "i", "me", "my", "you", "your", "we", "our", "it", "its",
    "this", "that", "these", "those", "what", "which", "who", "how",
    "some", "any", "about", "please", "there", "their", "have", "has",
})


def normalize_text(text: str) -> str:
    """Case-fold and collapse whitespace."""
    return _WHITESPACE.sub(" ", text.casefold()).strip()


def tokenize(text: str) -> FrozenSet[str]:
    """
    Extract content tokens for similarity scoring.

    Args:
        text: Raw text

    Returns:
        Case-folded word tokens without stop words
    """
    return frozenset(
        token for token in _TOKEN.findall(text.casefold())
        if token not in STOP_WORDS
    )


def normalize_messages(messages: Iterable[Message]) -> str:
    """Render messages as newline-joined ``role:content`` lines."""
    return "\n".join(
        f"{message.role}:{normalize_text(message.content)}"
        for message in messages
    )


def compute_fingerprint(request: CompletionRequest) -> Fingerprint:
    """
    Compute the cache fingerprint of a request.

    PATTERN: SHA-256 over normalized content
    CRITICAL: response_format is hashed too so text and JSON never alias
    GOTCHA: user_id is not part of the key, identical questions share answers

    Args:
        request: Completion request

    Returns:
        Fingerprint with exact key and similarity tokens
    """
    normalized = normalize_messages(request.messages)
    digest = hashlib.sha256(
        f"{request.response_format}\n{normalized}".encode("utf-8")
    ).hexdigest()

    tokens: FrozenSet[str] = frozenset().union(
        *(tokenize(m.content) for m in request.messages)
    )

    return Fingerprint(
        key=digest,
        tokens=tokens,
        response_format=request.response_format,
    )


def jaccard_similarity(left: FrozenSet[str], right: FrozenSet[str]) -> float:
    """
    Token-overlap similarity between two token sets.

    Returns:
        |left & right| / |left | right|, 0.0 when both are empty
    """
    if not left and not right:
        return 0.0
    return len(left & right) / len(left | right)


def rank_candidates(
    tokens: FrozenSet[str],
    candidates: Iterable[tuple],
) -> List[tuple]:
    """
    Score (key, tokens) candidates against a token set.

    Returns:
        (key, score) pairs, best first; ties keep candidate order
    """
    scored = [
        (key, jaccard_similarity(tokens, candidate_tokens))
        for key, candidate_tokens in candidates
    ]
    return sorted(scored, key=lambda pair: -pair[1])
