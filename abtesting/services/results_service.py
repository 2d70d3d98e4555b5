import logging
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional

from abtesting.core.clock import Clock, utcnow
from abtesting.core.errors import ExperimentNotFound
from abtesting.models.schemas.assignment import Assignment
from abtesting.models.schemas.event import ConversionEvent
from abtesting.models.schemas.experiment import Experiment
from abtesting.models.schemas.results import (
    DailyResults,
    DailyVariantResults,
    ExperimentResults,
    ResultsStatus,
    SecondaryMetric,
    VariantComparison,
    VariantResults,
)
from abtesting.services.statistics import (
    ProportionTest,
    conversion_rate,
    relative_effect,
    required_sample_size,
    two_proportion_z_test,
    wald_interval,
)
from abtesting.store.base import ExperimentStore

logger = logging.getLogger(__name__)


class _Counts:
    __slots__ = ("participants", "conversions")

    def __init__(self) -> None:
        self.participants = 0
        self.conversions = 0

    @property
    def rate(self) -> float:
        return conversion_rate(self.conversions, self.participants)


def _aggregate(assignments: List[Assignment]) -> Dict[str, _Counts]:
    counts: Dict[str, _Counts] = defaultdict(_Counts)
    for assignment in assignments:
        variant_counts = counts[assignment.variant_id]
        variant_counts.participants += 1
        if assignment.converted:
            variant_counts.conversions += 1
    return counts


class ResultsService:
    """
    Turns assignments and events into experiment results. Read-only: it
    works on whatever snapshot the store returns and never writes.
    """

    def __init__(self, store: ExperimentStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    def compute_results(self, experiment_id: str) -> ExperimentResults:
        experiment = self.store.get_experiment(experiment_id)
        if experiment is None:
            raise ExperimentNotFound(experiment_id)

        assignments = self.store.list_assignments(experiment_id)
        counts = _aggregate(assignments)
        variant_ids = self._variant_order(experiment, counts)

        events: List[ConversionEvent] = []
        if experiment.secondary_metrics:
            events = self.store.list_events(experiment_id)

        variant_results = self._variant_results(experiment, variant_ids, counts, events)
        daily_results = self._daily_results(variant_ids, assignments)

        control = experiment.control_variant
        control_counts = counts.get(control.variant_id) if control else None
        variants_with_traffic = sum(1 for c in counts.values() if c.participants > 0)

        if control_counts is None or control_counts.participants == 0 or variants_with_traffic < 2:
            return ExperimentResults(
                experiment_id=experiment_id,
                status=ResultsStatus.INSUFFICIENT_DATA,
                confidence=0.0,
                p_value=1.0,
                effect=0.0,
                variant_results=variant_results,
                daily_results=daily_results,
                calculated_at=self.clock(),
            )

        alpha = 1 - experiment.confidence_level / 100
        sample_size_needed = required_sample_size(control_counts.rate, experiment.minimum_effect)

        tests: Dict[str, ProportionTest] = {}
        comparisons: List[VariantComparison] = []
        for variant_id in variant_ids:
            test_counts = counts.get(variant_id)
            if variant_id == control.variant_id or test_counts is None or test_counts.participants == 0:
                continue
            test = two_proportion_z_test(
                control_counts.participants,
                control_counts.conversions,
                test_counts.participants,
                test_counts.conversions,
            )
            tests[variant_id] = test
            comparisons.append(
                VariantComparison(
                    variant_id=variant_id,
                    z_score=test.z_score,
                    p_value=test.p_value,
                    effect=test.effect,
                    confidence=test.confidence,
                    significant=test.is_significant(alpha),
                    required_sample_size=sample_size_needed,
                    actual_sample_size=control_counts.participants + test_counts.participants,
                )
            )

        # Best improving variant: lowest p-value among positive effects
        improving = [vid for vid, t in tests.items() if t.effect > 0]
        candidate = min(improving, key=lambda vid: tests[vid].p_value, default=None)

        # A loser must actually convert worse than control; a zero effect from
        # a zero control rate is not a loss.
        losing = [
            vid for vid, t in tests.items()
            if t.is_significant(alpha) and t.effect <= 0
            and counts[vid].rate < control_counts.rate
        ]

        winning_variant: Optional[str] = None
        if candidate is not None and tests[candidate].is_significant(alpha):
            status = ResultsStatus.SIGNIFICANT_WINNER
            winning_variant = candidate
            reported = tests[candidate]
        elif losing:
            status = ResultsStatus.SIGNIFICANT_LOSER
            reported = tests[min(losing, key=lambda vid: tests[vid].p_value)]
        else:
            status = ResultsStatus.NO_SIGNIFICANT_DIFFERENCE
            if candidate is not None:
                reported = tests[candidate]
            else:
                reported = min(tests.values(), key=lambda t: t.p_value)

        logger.debug(
            "Results for %s: %s (p=%.4f, effect=%.2f%%)",
            experiment_id,
            status.value,
            reported.p_value,
            reported.effect,
        )

        return ExperimentResults(
            experiment_id=experiment_id,
            status=status,
            winning_variant=winning_variant,
            confidence=reported.confidence,
            p_value=reported.p_value,
            effect=reported.effect,
            variant_results=variant_results,
            comparisons=comparisons,
            daily_results=daily_results,
            calculated_at=self.clock(),
        )

    @staticmethod
    def _variant_order(experiment: Experiment, counts: Dict[str, _Counts]) -> List[str]:
        # Defined variants first, in authored order, then any ids only seen in assignments
        ordered = [v.variant_id for v in sorted(experiment.variants, key=lambda v: v.position)]
        ordered.extend(sorted(vid for vid in counts if vid not in ordered))
        return ordered

    def _variant_results(
        self,
        experiment: Experiment,
        variant_ids: List[str],
        counts: Dict[str, _Counts],
        events: List[ConversionEvent],
    ) -> List[VariantResults]:
        event_counts: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for event in events:
            event_counts[event.variant_id][event.event_type] += 1

        def per_participant(variant_id: str, metric: str) -> float:
            participants = counts[variant_id].participants if variant_id in counts else 0
            if participants == 0:
                return 0.0
            return event_counts[variant_id][metric] / participants

        control = experiment.control_variant
        results = []
        for variant_id in variant_ids:
            variant_counts = counts.get(variant_id) or _Counts()

            secondary: Dict[str, SecondaryMetric] = {}
            for metric in experiment.secondary_metrics:
                value = per_participant(variant_id, metric)
                if control is None:
                    improvement = None
                elif variant_id == control.variant_id:
                    improvement = 0.0
                else:
                    control_value = per_participant(control.variant_id, metric)
                    improvement = relative_effect(value, control_value) if control_value > 0 else None
                secondary[metric] = SecondaryMetric(value=value, improvement=improvement)

            results.append(
                VariantResults(
                    variant_id=variant_id,
                    participants=variant_counts.participants,
                    conversions=variant_counts.conversions,
                    conversion_rate=variant_counts.rate,
                    confidence_interval=wald_interval(
                        variant_counts.conversions, variant_counts.participants
                    ),
                    secondary_metrics=secondary,
                )
            )
        return results

    @staticmethod
    def _daily_results(variant_ids: List[str], assignments: List[Assignment]) -> List[DailyResults]:
        """Per-day (not cumulative) counts, keyed by the day each user was assigned."""
        by_day: Dict[date, List[Assignment]] = defaultdict(list)
        for assignment in assignments:
            by_day[assignment.assigned_at.date()].append(assignment)

        daily = []
        for day in sorted(by_day):
            counts = _aggregate(by_day[day])
            daily.append(
                DailyResults(
                    day=day,
                    variant_results=[
                        DailyVariantResults(
                            variant_id=vid,
                            participants=counts[vid].participants,
                            conversions=counts[vid].conversions,
                            conversion_rate=counts[vid].rate,
                        )
                        for vid in variant_ids
                        if vid in counts
                    ],
                )
            )
        return daily
