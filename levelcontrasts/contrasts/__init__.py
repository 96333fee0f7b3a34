# File: levelcontrasts/contrasts/__init__.py
# Location: levelcontrasts/levelcontrasts/contrasts/__init__.py
"""
levelcontrasts.contrasts: pairwise categorical contrast engine.

Every level of a categorical column is used once as the reference of a model
refit; the resulting directed contrasts are reduced to one direction per
pair, corrected for multiple testing as a single family, and reported on the
model family's effect scale.

Public API
----------
ContrastEngine       : Orchestrator: refits, selects, corrects, transforms
ContrastConfig       : Configuration dataclass
DirectionTable       : Caller-assigned (base, other) direction per level pair
ContrastRecord       : Directed contrast on the native scale
CorrectedContrast    : Contrast with adjusted p-value and effect scale
BaselineEstimate     : Intercept per reference level
relevel              : Releveled dataset view
extract_contrasts    : Level terms of one fit -> ContrastRecords
select_non_redundant : Directed set -> C(k,2) records
correct_contrasts    : FDR/Bonferroni over a deduplicated set
apply_correction     : Standalone FDR/Bonferroni correction function
to_effect_scale      : Native scale -> fold change and 95% interval
estimate_baselines   : Intercept per level
"""

from levelcontrasts.contrasts.base import (
    BaselineEstimate,
    ContrastConfig,
    ContrastRecord,
    CorrectedContrast,
    EffectScale,
    FitOptions,
    FitResult,
    ModelFamily,
)
from levelcontrasts.contrasts.baseline import estimate_baselines
from levelcontrasts.contrasts.correction import apply_correction, correct_contrasts
from levelcontrasts.contrasts.directions import DirectionTable, select_non_redundant
from levelcontrasts.contrasts.engine import ContrastEngine, ContrastResult
from levelcontrasts.contrasts.extraction import extract_contrasts
from levelcontrasts.contrasts.relevel import level_set, relevel
from levelcontrasts.contrasts.scale import to_effect_scale

__all__ = [
    "BaselineEstimate",
    "ContrastConfig",
    "ContrastEngine",
    "ContrastRecord",
    "ContrastResult",
    "CorrectedContrast",
    "DirectionTable",
    "EffectScale",
    "FitOptions",
    "FitResult",
    "ModelFamily",
    "apply_correction",
    "correct_contrasts",
    "estimate_baselines",
    "extract_contrasts",
    "level_set",
    "relevel",
    "select_non_redundant",
    "to_effect_scale",
]
