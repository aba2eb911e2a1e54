"""Validation rule evaluator — pure, no I/O.

Rule families (each cites the regulation it enforces):

    MANDATORY_FIELDS           Reg 2023/956 Art. 16(1)        blocking
    CN_CODE_FORMAT             C(2025) 8151 Art. 16(1)        blocking
    REPORTING_YEAR             C(2025) 8151 Art. 7            blocking
    MATERIALITY                C(2025) 8150 Art. 5            warning
    VERIFICATION_REQUIREMENT   C(2025) 8151 Chapter 5         blocking
    METHOD_ELIGIBILITY         C(2025) 8151 Chapter 2-3       warning
    PRECURSOR_COMPLETENESS     C(2025) 8151 Art. 13 / 14      blocking / warning
    CARBON_PRICE_CERT          Reg 2023/956 Art. 9            blocking

Compliance score = 100 × (rules applied − blocking − 0.5 × warnings)
/ rules applied, rounded, never below zero.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from src.models.common import (
    METHODS_REQUIRING_VERIFICATION,
    CalculationMethod,
    IssueSeverity,
    ValidationStatus,
    VerificationStatus,
)
from src.models.entry import Entry, ValidationIssue

MIN_REPORTING_YEAR = 2026
DEFAULT_MATERIALITY_THRESHOLD_PERCENT = 5.0

REGULATIONS: dict[str, str] = {
    "MANDATORY_FIELDS": "Reg 2023/956 Art. 16(1)",
    "CN_CODE_FORMAT": "C(2025) 8151 Art. 16(1)",
    "REPORTING_YEAR": "C(2025) 8151 Art. 7",
    "MATERIALITY": "C(2025) 8150 Art. 5",
    "VERIFICATION_REQUIREMENT": "C(2025) 8151 Chapter 5",
    "METHOD_ELIGIBILITY": "C(2025) 8151 Chapter 2-3",
    "PRECURSOR_EMISSIONS": "C(2025) 8151 Art. 13",
    "PRECURSOR_TRACEABILITY": "C(2025) 8151 Art. 14(2)-(3)",
    "CARBON_PRICE_CERT": "Reg 2023/956 Art. 9",
}

_CN_CODE = re.compile(r"^\d{8}$")


def is_valid_cn_code(cn_code: str | None) -> bool:
    return bool(_CN_CODE.match(cn_code or ""))


@dataclass(frozen=True)
class MaterialityResult:
    reported: float
    benchmark: float
    variance_percent: float
    threshold_percent: float

    @property
    def exceeds_threshold(self) -> bool:
        return self.variance_percent > self.threshold_percent


@dataclass(frozen=True)
class MethodAcceptance:
    method: str
    accepted: bool
    reason: str


@dataclass
class ValidationOutcome:
    status: ValidationStatus
    blocking_issues: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    compliance_score: float = 0.0
    rules_applied: list[str] = field(default_factory=list)
    materiality: MaterialityResult | None = None
    method_acceptance: MethodAcceptance | None = None

    @property
    def is_blocked(self) -> bool:
        return self.status == ValidationStatus.BLOCKED


def _issue(
    rule: str,
    field_name: str,
    severity: IssueSeverity,
    message: str,
    *,
    regulation_key: str | None = None,
    current_value: Any = None,
    required_value: Any = None,
) -> ValidationIssue:
    return ValidationIssue(
        rule=rule,
        field=field_name,
        severity=severity,
        message=message,
        regulation=REGULATIONS[regulation_key or rule],
        current_value=current_value,
        required_value=required_value,
    )


def compliance_score(rules_applied: int, blocking: int, warnings: int) -> float:
    if rules_applied <= 0:
        return 0.0
    raw = 100 * (rules_applied - blocking - 0.5 * warnings) / rules_applied
    return float(max(0, round(raw)))


# ---------------------------------------------------------------------------
# Rule families
# ---------------------------------------------------------------------------


def _check_data_completeness(entry: Entry) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if not is_valid_cn_code(entry.cn_code):
        issues.append(_issue(
            "CN_CODE_FORMAT", "cn_code", IssueSeverity.BLOCKING,
            "CN code must be exactly 8 digits",
            current_value=entry.cn_code or "MISSING", required_value="8 digits",
        ))
    if not entry.country_of_origin:
        issues.append(_issue(
            "MANDATORY_FIELDS", "country_of_origin", IssueSeverity.BLOCKING,
            "Country of origin is mandatory",
            current_value=None, required_value="non-empty",
        ))
    if not entry.quantity or entry.quantity <= 0:
        issues.append(_issue(
            "MANDATORY_FIELDS", "quantity", IssueSeverity.BLOCKING,
            "Quantity must be greater than 0",
            current_value=entry.quantity, required_value="> 0",
        ))
    year = entry.reporting_period_year
    if not year or year < MIN_REPORTING_YEAR:
        issues.append(_issue(
            "REPORTING_YEAR", "reporting_period_year", IssueSeverity.BLOCKING,
            f"Reporting year cannot be before {MIN_REPORTING_YEAR} (definitive regime)",
            current_value=year, required_value=f">= {MIN_REPORTING_YEAR}",
        ))
    return issues


def _check_materiality(
    entry: Entry, benchmark_per_tonne: float, threshold_percent: float,
) -> tuple[MaterialityResult | None, list[ValidationIssue]]:
    reported = entry.total_embedded_emissions or 0.0
    benchmark = benchmark_per_tonne * (entry.quantity or 1.0)
    if benchmark <= 0:
        return None, []
    variance_percent = round(abs(reported - benchmark) / benchmark * 100, 2)
    result = MaterialityResult(
        reported=reported,
        benchmark=benchmark,
        variance_percent=variance_percent,
        threshold_percent=threshold_percent,
    )
    if not result.exceeds_threshold:
        return result, []
    return result, [_issue(
        "MATERIALITY", "total_embedded_emissions", IssueSeverity.WARNING,
        f"Variance {variance_percent:.1f}% exceeds {threshold_percent:g}% materiality "
        "threshold - documentation required",
        current_value=variance_percent, required_value=f"<= {threshold_percent:g}%",
    )]


def _check_method(entry: Entry) -> tuple[MethodAcceptance, list[ValidationIssue], list[ValidationIssue]]:
    method = entry.calculation_method
    if method not in set(CalculationMethod):
        warning = _issue(
            "METHOD_ELIGIBILITY", "calculation_method", IssueSeverity.WARNING,
            f"Unknown calculation method: {method}",
            current_value=str(method), required_value=[m.value for m in CalculationMethod],
        )
        return MethodAcceptance(str(method), False, "Method not recognised"), [], [warning]

    if method not in METHODS_REQUIRING_VERIFICATION:
        markup = entry.calculation.mark_up_percentage_applied if entry.calculation else 0.0
        return (
            MethodAcceptance(method.value, True, f"Default values with {markup:g}% mark-up"),
            [],
            [],
        )

    status = entry.verification_status
    if status == VerificationStatus.VERIFIER_SATISFACTORY:
        return (
            MethodAcceptance(method.value, True, "Actual emissions with satisfactory verification"),
            [],
            [],
        )
    message = (
        "Actual emissions require accredited verifier certification"
        if status == VerificationStatus.NOT_VERIFIED
        else "Verification status is not satisfactory"
    )
    blocking = _issue(
        "VERIFICATION_REQUIREMENT", "verification_status", IssueSeverity.BLOCKING,
        message,
        current_value=status.value, required_value=VerificationStatus.VERIFIER_SATISFACTORY.value,
    )
    return MethodAcceptance(method.value, False, message), [blocking], []


def _check_precursors(entry: Entry) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
    blocking: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    for idx, precursor in enumerate(entry.precursors):
        label = precursor.precursor_cn_code or str(idx)
        if not precursor.reporting_period_year:
            warnings.append(_issue(
                "PRECURSOR_COMPLETENESS", f"precursors[{idx}].reporting_period_year",
                IssueSeverity.WARNING,
                f"Precursor {label} missing reporting year - defaulting to complex good year",
                regulation_key="PRECURSOR_TRACEABILITY",
                current_value=None, required_value=entry.reporting_period_year,
            ))
        elif (
            precursor.reporting_period_year != entry.reporting_period_year
            and not precursor.evidence_ref
        ):
            warnings.append(_issue(
                "PRECURSOR_COMPLETENESS", f"precursors[{idx}].evidence_ref",
                IssueSeverity.WARNING,
                f"Precursor from different year ({precursor.reporting_period_year}) "
                "requires evidence documentation",
                regulation_key="PRECURSOR_TRACEABILITY",
                current_value=precursor.reporting_period_year,
                required_value=entry.reporting_period_year,
            ))
        if not precursor.has_emissions_data:
            blocking.append(_issue(
                "PRECURSOR_COMPLETENESS", f"precursors[{idx}].emissions_embedded",
                IssueSeverity.BLOCKING,
                f"Precursor {label} missing emission data",
                regulation_key="PRECURSOR_EMISSIONS",
                current_value=None, required_value="emissions_embedded or intensity factor",
            ))
        if not precursor.production_installation_id:
            warnings.append(_issue(
                "PRECURSOR_COMPLETENESS", f"precursors[{idx}].production_installation_id",
                IssueSeverity.WARNING,
                f"Precursor {label} missing installation reference",
                regulation_key="PRECURSOR_TRACEABILITY",
                current_value=None, required_value="installation id",
            ))
    return blocking, warnings


def _check_carbon_price(entry: Entry) -> list[ValidationIssue]:
    if entry.carbon_price_due_paid and entry.carbon_price_due_paid > 0:
        if not entry.carbon_price_certificate_ref:
            return [_issue(
                "CARBON_PRICE_CERT", "carbon_price_certificate_ref", IssueSeverity.BLOCKING,
                "Carbon price deduction requires certificate evidence",
                current_value=entry.carbon_price_due_paid, required_value="certificate reference",
            )]
    return []


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


def evaluate(
    entry: Entry,
    benchmark: float | None = None,
    *,
    materiality_threshold_percent: float = DEFAULT_MATERIALITY_THRESHOLD_PERCENT,
) -> ValidationOutcome:
    """Evaluate every rule family against ``entry``.

    ``benchmark`` is the default value per tonne for the entry's CN code.
    Materiality only counts as an applied rule when a benchmark is given
    and the entry has computed emissions.
    """
    blocking: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    applied: list[str] = []

    applied.append("DATA_COMPLETENESS")
    blocking.extend(_check_data_completeness(entry))

    materiality = None
    if benchmark is not None and entry.total_embedded_emissions:
        applied.append("MATERIALITY_ASSESSMENT")
        materiality, found = _check_materiality(entry, benchmark, materiality_threshold_percent)
        warnings.extend(found)

    applied.append("METHOD_ELIGIBILITY")
    acceptance, method_blocking, method_warnings = _check_method(entry)
    blocking.extend(method_blocking)
    warnings.extend(method_warnings)

    applied.append("PRECURSOR_COMPLETENESS")
    precursor_blocking, precursor_warnings = _check_precursors(entry)
    blocking.extend(precursor_blocking)
    warnings.extend(precursor_warnings)

    applied.append("CARBON_PRICE_DEDUCTION")
    blocking.extend(_check_carbon_price(entry))

    if blocking:
        status = ValidationStatus.BLOCKED
    elif warnings:
        status = ValidationStatus.WARNING
    else:
        status = ValidationStatus.PASS

    return ValidationOutcome(
        status=status,
        blocking_issues=blocking,
        warnings=warnings,
        compliance_score=compliance_score(len(applied), len(blocking), len(warnings)),
        rules_applied=applied,
        materiality=materiality,
        method_acceptance=acceptance,
    )
