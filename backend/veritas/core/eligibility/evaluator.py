"""
Eligibility Evaluator — plain criteria matching, no cryptography.

Two entry points share the same predicates but treat missing patient data
differently:

    check_eligibility         Fast pre-check for user feedback. A criterion
                              whose patient field is absent is reported as
                              "not evaluated" (met=None) and ignored for
                              eligibility and confidence.

    check_eligibility_strict  Gate in front of commitment generation. A
                              criterion that cannot be evaluated counts as
                              failed, with the criterion's own criticality,
                              so generation never proceeds on unverifiable
                              data.

Predicates:
    numeric range         min <= value <= max (inclusive)
    required token        patient list contains it (case-insensitive)
    excluded token        patient list does not contain it (case-insensitive)

Required medications are soft requirements: a mismatch is surfaced but
does not block eligibility. Every other criterion is critical.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from veritas.core.eligibility.normalizer import canonical_token
from veritas.schemas.medical import (
    BIOMARKER_FIELDS,
    FIELD_LABELS,
    FIELD_UNITS,
    VITAL_FIELDS,
    EligibilityCriteria,
    NumericRange,
    PatientMedicalData,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT MODELS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EligibilityCheck:
    """Outcome of one criterion. `met` is None when it could not be evaluated."""
    criterion: str
    met: Optional[bool]
    reason: str
    critical: bool

    @property
    def evaluated(self) -> bool:
        return self.met is not None

    @property
    def failed(self) -> bool:
        return self.met is False


@dataclass(frozen=True)
class EligibilityReport:
    """Aggregate of all checks for one (patient, criteria) pair."""
    is_eligible: bool
    confidence_score: float          # passed / evaluated, 0.0 when nothing evaluated
    checks: List[EligibilityCheck] = field(default_factory=list)
    summary: str = ""

    @property
    def failed_checks(self) -> List[EligibilityCheck]:
        return [c for c in self.checks if c.failed]

    @property
    def critical_failures(self) -> List[EligibilityCheck]:
        return [c for c in self.checks if c.failed and c.critical]

    @property
    def skipped_checks(self) -> List[EligibilityCheck]:
        return [c for c in self.checks if not c.evaluated]


# ═══════════════════════════════════════════════════════════════════════════════
# PREDICATES
# ═══════════════════════════════════════════════════════════════════════════════

def _fmt(value: float) -> str:
    return f"{value:g}"


def _range_criterion(field_name: str) -> str:
    label = FIELD_LABELS[field_name]
    if field_name == "age":
        return "Age Range"
    if field_name in BIOMARKER_FIELDS:
        return f"Biomarker: {label}"
    return f"Vital: {label}"


def _check_range(
    field_name: str,
    value: Optional[float],
    bounds: NumericRange,
    strict: bool,
) -> EligibilityCheck:
    criterion = _range_criterion(field_name)
    label = FIELD_LABELS[field_name]
    unit = FIELD_UNITS[field_name]
    span = f"{_fmt(bounds.min)}-{_fmt(bounds.max)}"

    if value is None:
        return EligibilityCheck(
            criterion=criterion,
            met=False if strict else None,
            reason=f"No {label} value available",
            critical=True,
        )

    met = bounds.contains(value)
    if met:
        reason = f"{label}: {_fmt(value)} {unit} is within range {span}"
    else:
        reason = f"{label}: {_fmt(value)} {unit} is outside required range {span}"
    return EligibilityCheck(criterion=criterion, met=met, reason=reason, critical=True)


def _check_tokens(
    kind: str,
    patient_tokens: Optional[Sequence[str]],
    criteria_tokens: Optional[Sequence[str]],
    required: bool,
    critical: bool,
    strict: bool,
) -> List[EligibilityCheck]:
    if not criteria_tokens:
        return []

    prefix = "Required" if required else "Excluded"
    noun = kind.lower()

    if patient_tokens is None:
        return [
            EligibilityCheck(
                criterion=f"{prefix} {kind}: {token}",
                met=False if strict else None,
                reason=f"No {noun} data available",
                critical=critical,
            )
            for token in criteria_tokens
        ]

    present = {canonical_token(t) for t in patient_tokens}
    checks = []
    for token in criteria_tokens:
        has_token = canonical_token(token) in present
        if required:
            met = has_token
            reason = (
                f"Patient has required {noun} {token}"
                if met else f"Patient missing required {noun} {token}"
            )
        else:
            met = not has_token
            reason = (
                f"Patient does not have excluded {noun} {token}"
                if met else f"Patient has excluded {noun} {token}"
            )
        checks.append(EligibilityCheck(
            criterion=f"{prefix} {kind}: {token}",
            met=met,
            reason=reason,
            critical=critical,
        ))
    return checks


# ═══════════════════════════════════════════════════════════════════════════════
# EVALUATION
# ═══════════════════════════════════════════════════════════════════════════════

def _generate_summary(is_eligible: bool, checks: List[EligibilityCheck]) -> str:
    if is_eligible:
        summary = "You meet all critical eligibility criteria for this study."
        skipped = sum(1 for c in checks if not c.evaluated)
        if skipped:
            summary += f" {skipped} criteria could not be evaluated with the data provided."
        return summary

    failed_critical = [c for c in checks if c.failed and c.critical]
    if len(failed_critical) == 1:
        return f"You do not meet the following requirement: {failed_critical[0].criterion}"
    return f"You do not meet {len(failed_critical)} critical requirements for this study."


def _evaluate(
    data: PatientMedicalData,
    criteria: EligibilityCriteria,
    strict: bool,
) -> EligibilityReport:
    checks: List[EligibilityCheck] = []

    for field_name in ("age",) + BIOMARKER_FIELDS + VITAL_FIELDS:
        bounds = criteria.range_for(field_name)
        if bounds is not None:
            checks.append(_check_range(field_name, data.value_of(field_name), bounds, strict))

    checks += _check_tokens(
        "Medication", data.medications, criteria.required_medications,
        required=True, critical=False, strict=strict,
    )
    checks += _check_tokens(
        "Medication", data.medications, criteria.excluded_medications,
        required=False, critical=True, strict=strict,
    )
    checks += _check_tokens(
        "Allergy", data.allergies, criteria.excluded_allergies,
        required=False, critical=True, strict=strict,
    )
    checks += _check_tokens(
        "Diagnosis", data.diagnoses, criteria.required_diagnoses,
        required=True, critical=True, strict=strict,
    )
    checks += _check_tokens(
        "Diagnosis", data.diagnoses, criteria.excluded_diagnoses,
        required=False, critical=True, strict=strict,
    )

    is_eligible = not any(c.failed and c.critical for c in checks)
    evaluated = [c for c in checks if c.evaluated]
    passed = sum(1 for c in evaluated if c.met)
    confidence = passed / len(evaluated) if evaluated else 0.0

    return EligibilityReport(
        is_eligible=is_eligible,
        confidence_score=confidence,
        checks=checks,
        summary=_generate_summary(is_eligible, checks),
    )


def check_eligibility(
    data: PatientMedicalData,
    criteria: EligibilityCriteria,
) -> EligibilityReport:
    """Pre-check for user feedback; absent patient data is not evaluated."""
    report = _evaluate(data, criteria, strict=False)
    logger.debug(
        f"[ELIGIBILITY] pre-check: eligible={report.is_eligible} "
        f"checks={len(report.checks)} skipped={len(report.skipped_checks)}"
    )
    return report


def check_eligibility_strict(
    data: PatientMedicalData,
    criteria: EligibilityCriteria,
) -> EligibilityReport:
    """Generation gate; absent patient data fails the criterion."""
    return _evaluate(data, criteria, strict=True)
