"""Complexity classifier for adaptive model selection."""

import logging
import re
from typing import List, Sequence

from pydantic import BaseModel, Field

from ..models.llm_models import ComplexityTier, Message

logger = logging.getLogger(__name__)

_CLAUSE_MARKS = re.compile(r"[.!?;,]+")


class ComplexityAnalysis(BaseModel):
    """Breakdown of a complexity classification."""

    tier: ComplexityTier
    score: int = Field(ge=0)
    word_count: int
    clause_count: int
    question_count: int
    analytical_terms: List[str] = Field(default_factory=list)
    medical_terms: List[str] = Field(default_factory=list)
    specialized_context: bool = False
    reasoning: str = ""

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class ComplexityClassifier:
    """
    Assigns a complexity tier to a chat request.

    PATTERN: Additive point scoring over cheap lexical signals
    CRITICAL: Pure and deterministic, no external calls
    GOTCHA: Keywords are stems matched as substrings ("analy" hits analyze/analysis)
    """

    # Stems signalling analytical or multi-factor reasoning
    ANALYTICAL_TERMS = (
        "analy",
        "compar",
        "relationship",
        "correlat",
        "mechanism",
        "evaluat",
        "interact",
        "optimal",
        "evidence",
        "statistic",
        "trend",
        "comprehensive",
        "assess",
        "tradeoff",
        "trade-off",
        "implication",
    )

    # Stems signalling medical domain depth
    MEDICAL_TERMS = (
        "hypertension",
        "insulin",
        "metabolic",
        "syndrome",
        "inflammat",
        "lipid",
        "contraindicat",
        "diagnos",
        "medication",
        "chronic",
        "cardiovascular",
        "diabet",
        "cholesterol",
        "blood pressure",
        "patient",
        "symptom",
        "clinical",
        "dosage",
        "glucose",
        "cardiac",
    )

    # System prompts that establish a specialist persona
    SPECIALIZED_CONTEXT_TERMS = (
        "specialist",
        "specialized",
        "expert",
        "medical",
        "clinical",
        "physician",
        "doctor",
        "nutritionist",
        "advisor",
    )

    KEYWORD_CAP = 3

    def __init__(self):
        """Initialize complexity classifier."""
        self.logger = logging.getLogger(__name__)

    def classify(self, messages: Sequence[Message]) -> ComplexityTier:
        """
        Classify the complexity of a message list.

        Args:
            messages: Chat messages

        Returns:
            Complexity tier
        """
        return ComplexityTier(self.analyze(messages).tier)

    def analyze(self, messages: Sequence[Message]) -> ComplexityAnalysis:
        """
        Score a message list and map the score to a tier.

        PATTERN: length + clauses + questions + keywords + system context

        Args:
            messages: Chat messages

        Returns:
            ComplexityAnalysis with the tier and contributing signals
        """
        all_text = " ".join(m.content for m in messages)
        lower_text = all_text.lower()

        word_count = len(all_text.split())
        clause_count = len(_CLAUSE_MARKS.findall(all_text))
        question_count = all_text.count("?")

        analytical = [t for t in self.ANALYTICAL_TERMS if t in lower_text]
        medical = [t for t in self.MEDICAL_TERMS if t in lower_text]
        specialized = any(
            m.role == "system"
            and any(t in m.content.lower() for t in self.SPECIALIZED_CONTEXT_TERMS)
            for m in messages
        )

        score = 0
        score += self._length_points(word_count)
        score += self._clause_points(clause_count)
        if question_count > 1:
            score += 1
        score += min(len(analytical), self.KEYWORD_CAP)
        score += min(len(medical), self.KEYWORD_CAP)
        if specialized:
            score += 2

        tier = self._tier_for_score(score)

        analysis = ComplexityAnalysis(
            tier=tier,
            score=score,
            word_count=word_count,
            clause_count=clause_count,
            question_count=question_count,
            analytical_terms=analytical,
            medical_terms=medical,
            specialized_context=specialized,
            reasoning=self._generate_reasoning(
                score, word_count, analytical, medical, specialized
            ),
        )
        self.logger.debug(f"Classified as {tier.value} (score {score}): {analysis.reasoning}")
        return analysis

    @staticmethod
    def _length_points(word_count: int) -> int:
        if word_count < 15:
            return 0
        if word_count < 40:
            return 1
        if word_count < 80:
            return 2
        return 3

    @staticmethod
    def _clause_points(clause_count: int) -> int:
        if clause_count >= 6:
            return 2
        if clause_count >= 3:
            return 1
        return 0

    @staticmethod
    def _tier_for_score(score: int) -> ComplexityTier:
        if score <= 1:
            return ComplexityTier.LOW
        if score <= 4:
            return ComplexityTier.MEDIUM
        if score <= 8:
            return ComplexityTier.HIGH
        return ComplexityTier.VERY_HIGH

    def _generate_reasoning(
        self,
        score: int,
        word_count: int,
        analytical: List[str],
        medical: List[str],
        specialized: bool,
    ) -> str:
        """Human-readable summary of the signals that fired."""
        reasons = [f"score {score}", f"{word_count} words"]

        if analytical:
            reasons.append(f"analytical indicators: {', '.join(analytical[:3])}")
        if medical:
            reasons.append(f"medical indicators: {', '.join(medical[:3])}")
        if specialized:
            reasons.append("specialized system context")

        return "; ".join(reasons)
