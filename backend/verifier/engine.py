"""
Consensus verification engine.
Collects from every active source, weighs the votes, classifies the result
and upserts the Prediction for the game number.
"""
from __future__ import annotations

from typing import Optional

from shared.models.domain import Prediction, SourceOutcome, VerificationResult, WeightedOutcome
from shared.models.enums import PredictionStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import CONSENSUS_CONFIDENCE, STORE_WRITE_RETRIES, VERIFICATIONS
from verifier.collector import Collector
from verifier.confidence import ConsensusThresholds, compute_consensus
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.hints import failure_hints, generate_hints
from verifier.numbering import GameNumbering
from verifier.registry import SourceRegistry
from verifier.retry import RetryPolicy
from verifier.store.base import PredictionStore, StoreError

logger = get_logger(__name__)


class PipelineError(Exception):
    """No source produced a usable answer; the caller decides whether to retry."""

    def __init__(self, game_number: int, message: str, result: Optional[VerificationResult] = None) -> None:
        super().__init__(f"game {game_number}: {message}")
        self.game_number = game_number
        self.result = result


class ConsensusVerifier:
    """Collector -> weighted consensus -> Prediction upsert."""

    def __init__(
        self,
        collector: Collector,
        registry: SourceRegistry,
        store: PredictionStore,
        numbering: GameNumbering,
        settings: Optional[VerifierSettings] = None,
        thresholds: Optional[ConsensusThresholds] = None,
        persist_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._collector = collector
        self._registry = registry
        self._store = store
        self._numbering = numbering
        self._settings = settings or get_verifier_settings()
        self._thresholds = thresholds or ConsensusThresholds.from_settings(self._settings)
        self._persist_policy = persist_policy or RetryPolicy(
            max_retries=max(self._settings.persist_max_attempts - 1, 0),
            delay_s=self._settings.persist_retry_delay_s,
            retry_on=(StoreError,),
        )

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def thresholds(self) -> ConsensusThresholds:
        return self._thresholds

    async def reload_sources(self) -> bool:
        return await self._registry.reload(lambda: self._store.list_sources())

    def weigh(self, outcomes: list[SourceOutcome]) -> list[WeightedOutcome]:
        return [
            WeightedOutcome(**o.model_dump(), weight=self._registry.weight_for(o.source_name))
            for o in outcomes
        ]

    async def evaluate(self, game_number: int) -> VerificationResult:
        """
        Collect and compute consensus without persisting.
        Raises PipelineError when no source produced a valid word.
        """
        outcomes = self.weigh(await self._collector.collect(game_number))
        consensus = compute_consensus(outcomes, self._thresholds)
        result = VerificationResult(
            game_number=game_number,
            sources=outcomes,
            consensus_word=consensus.word,
            confidence=consensus.confidence,
            status=consensus.status,
            contributing_sources=consensus.contributing_sources,
        )
        VERIFICATIONS.labels(status=result.status.value).inc()
        CONSENSUS_CONFIDENCE.observe(result.confidence)

        if not outcomes:
            raise PipelineError(game_number, "collector returned no outcomes", result)
        if consensus.successful_count == 0:
            raise PipelineError(game_number, f"all {len(outcomes)} sources failed", result)

        logger.info(
            "consensus_computed",
            game_number=game_number,
            word=result.consensus_word,
            confidence=round(result.confidence, 4),
            status=result.status.value,
            contributing=result.contributing_sources,
            successful=consensus.successful_count,
        )
        return result

    def to_prediction(self, result: VerificationResult) -> Prediction:
        word = result.consensus_word
        return Prediction(
            game_number=result.game_number,
            date=self._numbering.date_for_game_number(result.game_number),
            predicted_word=word,
            verified_word=word if result.status == PredictionStatus.VERIFIED else None,
            status=result.status,
            confidence_score=result.confidence,
            verification_sources=list(result.contributing_sources),
            hints=generate_hints(word, result.confidence) if word else None,
        )

    async def persist(self, result: VerificationResult) -> Prediction:
        return await self.save(self.to_prediction(result))

    async def save(self, prediction: Prediction) -> Prediction:
        """Upsert with bounded retries on StoreError."""
        stored = await self._persist_policy.run(
            lambda: self._store.upsert(prediction),
            name="prediction_upsert",
            on_retry=lambda attempt, exc: STORE_WRITE_RETRIES.labels(operation="upsert").inc(),
        )
        logger.info(
            "prediction_saved",
            game_number=stored.game_number,
            status=stored.status.value,
            word=stored.word,
        )
        return stored

    async def verify(self, game_number: int) -> VerificationResult:
        """Full pipeline for one game number; the Prediction is upserted on success."""
        result = await self.evaluate(game_number)
        await self.persist(result)
        return result

    async def write_placeholder(self, game_number: int, error: str) -> Prediction:
        """Deterministic rejected record for a game number whose collection gave up."""
        placeholder = Prediction(
            game_number=game_number,
            date=self._numbering.date_for_game_number(game_number),
            status=PredictionStatus.REJECTED,
            confidence_score=0.0,
            hints=failure_hints(error),
        )
        return await self.save(placeholder)
