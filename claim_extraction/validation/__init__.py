"""
Validation module for multi-model answers.

Provides consensus scoring between two answers, progressive combination
of ranked passes, and judge arbitration for low agreement.
"""

from claim_extraction.validation.consensus import (
    AgreementMethod,
    ConsensusDecision,
    ConsensusEngine,
    evaluate_consensus,
)
from claim_extraction.validation.judge import (
    Discrepancy,
    ErrorPatternReport,
    JudgeArbitrator,
    JudgeDecision,
    JudgeSelection,
    field_kind,
)
from claim_extraction.validation.progressive_combiner import (
    FieldSlot,
    ProgressiveCombiner,
    RankedPass,
    combine_passes,
)


__all__ = [
    # Consensus
    "AgreementMethod",
    "ConsensusDecision",
    "ConsensusEngine",
    "evaluate_consensus",
    # Combination
    "FieldSlot",
    "ProgressiveCombiner",
    "RankedPass",
    "combine_passes",
    # Judge
    "Discrepancy",
    "ErrorPatternReport",
    "JudgeArbitrator",
    "JudgeDecision",
    "JudgeSelection",
    "field_kind",
]
