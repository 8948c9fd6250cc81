"""
Weighted agreement over independently produced model outputs.

The aggregator discards failed invocations, enforces quorum, assigns each
surviving model an effective weight, clusters equivalent outputs and reports
the weight share of the plurality cluster as agreement.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .ConsensusErrors import InsufficientQuorum
from .ConsensusTypes import (
    AggregationResult,
    AIModel,
    ConsensusAlgorithm,
    ConsensusRule,
    ModelOutcome,
    OutputCluster,
    VerbosityLevel,
)
from .OutputComparison import NormalizedComparator, OutputComparator

logger = logging.getLogger(__name__)

# Cluster weights are compared after rounding so float noise cannot flip a tie
_WEIGHT_PRECISION = 9


class ConsensusAggregator:
    """
    Combines per-model outcomes into one weighted agreement score.

    Results are a pure function of the rule, the model configurations and the
    set of successful outcomes: arrival order never changes the synthesized
    output or the agreement.
    """

    def __init__(
        self,
        comparator: Optional[OutputComparator] = None,
        verbosity: VerbosityLevel = VerbosityLevel.NORMAL,
    ) -> None:
        self._comparator = comparator or NormalizedComparator()
        self._verbosity = verbosity

    def aggregate(
        self,
        rule: ConsensusRule,
        models: Mapping[str, AIModel],
        outcomes: Sequence[ModelOutcome],
    ) -> AggregationResult:
        """Aggregate outcomes under ``rule``.

        Raises:
            InsufficientQuorum: fewer distinct successful models than the rule requires
        """
        successes = self._distinct_successes(outcomes)
        failures = sum(1 for outcome in outcomes if not outcome.success)
        if len(successes) < rule.minimum_models_required:
            logger.warning(
                f"❌ Quorum missed for rule {rule.id}: {len(successes)}/{rule.minimum_models_required} "
                f"successful ({failures} failed)"
            )
            raise InsufficientQuorum(rule.minimum_models_required, len(successes))

        for outcome in successes:
            if outcome.model_id not in models:
                raise ValueError(f"Outcome for unknown model '{outcome.model_id}'")

        weights = self.effective_weights(rule, models, successes)
        ranked = self._rank(successes, weights, models)
        clusters = self._cluster(ranked, weights)
        plurality = clusters[0]

        if len(successes) == 1 or len(plurality.members) == len(successes):
            agreement = 1.0
        elif len(plurality.members) < 2:
            # Only reached when every cluster is a single model
            agreement = 0.0
        else:
            agreement = min(1.0, max(0.0, plurality.weight))

        outputs = {outcome.model_id: outcome.invocation.output for outcome in successes if outcome.invocation}
        synthesized_output = outputs[plurality.representative]

        if self._verbosity == VerbosityLevel.VERBOSE:
            for cluster in clusters:
                logger.info(f"   📊 Vote group (weight {cluster.weight:.3f}): {', '.join(cluster.members)}")
        logger.debug(
            f"Aggregated {len(successes)} outcome(s) with {rule.consensus_algorithm.value}: "
            f"agreement={agreement:.3f}, winner={plurality.representative}"
        )

        return AggregationResult(
            synthesized_output=synthesized_output,
            agreement=agreement,
            models_used=tuple(outcome.model_id for outcome in ranked),
            weights=weights,
            clusters=tuple(clusters),
            algorithm=rule.consensus_algorithm,
        )

    @staticmethod
    def _distinct_successes(outcomes: Sequence[ModelOutcome]) -> List[ModelOutcome]:
        # One vote per model id, whatever order duplicates arrive in
        by_model: Dict[str, ModelOutcome] = {}
        for outcome in sorted(
            (outcome for outcome in outcomes if outcome.success),
            key=lambda outcome: (outcome.model_id, outcome.invocation.output if outcome.invocation else ""),
        ):
            by_model.setdefault(outcome.model_id, outcome)
        return list(by_model.values())

    @staticmethod
    def effective_weights(
        rule: ConsensusRule,
        models: Mapping[str, AIModel],
        successes: Sequence[ModelOutcome],
    ) -> Dict[str, float]:
        """Normalised effective weight per successful model; the values sum to 1."""
        if not successes:
            return {}

        uniform = {outcome.model_id: 1.0 / len(successes) for outcome in successes}
        if rule.consensus_algorithm == ConsensusAlgorithm.MAJORITY_VOTE:
            return uniform

        max_priority = max(models[outcome.model_id].priority for outcome in successes)
        raw: Dict[str, float] = {}
        for outcome in successes:
            model = models[outcome.model_id]
            explicit = rule.weight_for(model.provider)
            if explicit is not None:
                base = explicit
            else:
                # Providers without an explicit weight get a share of the highest priority
                base = model.priority / max_priority if max_priority > 0 else 1.0
            value = base * (model.success_rate / 100.0)
            if rule.consensus_algorithm == ConsensusAlgorithm.CONFIDENCE_WEIGHTED and outcome.invocation:
                confidence = outcome.invocation.provider_confidence
                value *= confidence if confidence is not None else 1.0
            raw[outcome.model_id] = value

        total = sum(raw.values())
        if total <= 0.0:
            return uniform
        return {model_id: value / total for model_id, value in raw.items()}

    @staticmethod
    def _rank(
        successes: Sequence[ModelOutcome],
        weights: Mapping[str, float],
        models: Mapping[str, AIModel],
    ) -> List[ModelOutcome]:
        # Descending weight, then lowest configured latency, then model id
        return sorted(
            successes,
            key=lambda outcome: (
                -round(weights[outcome.model_id], _WEIGHT_PRECISION),
                models[outcome.model_id].avg_latency_ms,
                outcome.model_id,
            ),
        )

    def _cluster(self, ranked: Sequence[ModelOutcome], weights: Mapping[str, float]) -> List[OutputCluster]:
        # Each outcome joins the first cluster whose representative it matches
        groups: List[Tuple[ModelOutcome, List[ModelOutcome]]] = []
        for outcome in ranked:
            assert outcome.invocation is not None
            for representative, members in groups:
                assert representative.invocation is not None
                if self._comparator.equivalent(representative.invocation.output, outcome.invocation.output):
                    members.append(outcome)
                    break
            else:
                groups.append((outcome, [outcome]))

        clusters = [
            OutputCluster(
                representative=representative.model_id,
                members=tuple(member.model_id for member in members),
                weight=sum(weights[member.model_id] for member in members),
            )
            for representative, members in groups
        ]
        # Agreeing clusters outrank single-model clusters however heavy the single model is.
        # Representatives were created in rank order, so the list index breaks remaining ties
        order = {cluster.representative: index for index, cluster in enumerate(clusters)}
        return sorted(
            clusters,
            key=lambda cluster: (
                len(cluster.members) < 2,
                -round(cluster.weight, _WEIGHT_PRECISION),
                -len(cluster.members),
                order[cluster.representative],
            ),
        )
