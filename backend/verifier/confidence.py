"""
Weighted-vote consensus over source outcomes.

Each successful outcome with a valid word votes with its source weight.
confidence = score(winner) / total voting weight
             + min(contributing / successful, 1) * agreement_bonus, capped at 1.
verified needs confidence >= verified threshold AND enough agreeing sources;
one source alone can seed a candidate but never a verified answer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from shared.models.domain import WeightedOutcome
from shared.models.enums import PredictionStatus
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.sources.base import normalize_word


@dataclass(frozen=True)
class ConsensusThresholds:
    verified: float = 0.7
    candidate: float = 0.3
    min_sources: int = 2
    agreement_bonus: float = 0.2

    @classmethod
    def from_settings(cls, settings: Optional[VerifierSettings] = None) -> "ConsensusThresholds":
        settings = settings or get_verifier_settings()
        return cls(
            verified=settings.verified_threshold,
            candidate=settings.candidate_threshold,
            min_sources=settings.min_sources,
            agreement_bonus=settings.agreement_bonus,
        )


@dataclass
class Consensus:
    word: Optional[str]
    confidence: float
    status: PredictionStatus
    contributing_sources: list[str] = field(default_factory=list)
    successful_count: int = 0
    total_weight: float = 0.0


def _votes(outcome: WeightedOutcome) -> Optional[str]:
    """Word this outcome votes for, or None when it carries no vote."""
    if not outcome.success or outcome.weight <= 0:
        return None
    return normalize_word(outcome.word)


def classify_status(
    confidence: float,
    contributing: int,
    successful: int,
    thresholds: ConsensusThresholds,
) -> PredictionStatus:
    if confidence >= thresholds.verified and contributing >= thresholds.min_sources:
        return PredictionStatus.VERIFIED
    if confidence > thresholds.candidate and successful >= 1:
        return PredictionStatus.CANDIDATE
    return PredictionStatus.REJECTED


def compute_consensus(
    outcomes: Sequence[WeightedOutcome],
    thresholds: Optional[ConsensusThresholds] = None,
) -> Consensus:
    """
    Pick the consensus word and classify it.

    Ties on weighted score are broken by raw vote count, then by the order
    in which the word was first seen in outcomes.
    """
    thresholds = thresholds or ConsensusThresholds()

    scores: dict[str, float] = {}
    counts: dict[str, int] = {}
    contributors: dict[str, list[str]] = {}
    first_seen: dict[str, int] = {}
    total_weight = 0.0
    successful = 0

    for outcome in outcomes:
        word = _votes(outcome)
        if word is None:
            continue
        successful += 1
        total_weight += outcome.weight
        if word not in scores:
            scores[word] = 0.0
            counts[word] = 0
            contributors[word] = []
            first_seen[word] = len(first_seen)
        scores[word] += outcome.weight
        counts[word] += 1
        if outcome.source_name not in contributors[word]:
            contributors[word].append(outcome.source_name)

    if not successful:
        return Consensus(word=None, confidence=0.0, status=PredictionStatus.REJECTED)

    # Rounded so 0.1 + 0.2 ties with 0.3.
    winner = max(scores, key=lambda w: (round(scores[w], 9), counts[w], -first_seen[w]))
    contributing = len(contributors[winner])
    bonus = min(contributing / successful, 1.0) * thresholds.agreement_bonus
    confidence = min(scores[winner] / total_weight + bonus, 1.0)

    return Consensus(
        word=winner,
        confidence=confidence,
        status=classify_status(confidence, contributing, successful, thresholds),
        contributing_sources=contributors[winner],
        successful_count=successful,
        total_weight=total_weight,
    )
