import pytest

from veritas.core.eligibility.evaluator import check_eligibility, check_eligibility_strict
from veritas.schemas.medical import EligibilityCriteria, NumericRange, PatientMedicalData

# ═══════════════════════════════════════════════════════════════════════════════
# SCENARIOS
# ═══════════════════════════════════════════════════════════════════════════════

def test_scenario_b_is_eligible(patient_b, criteria_b):
    report = check_eligibility(patient_b, criteria_b)

    assert report.is_eligible is True
    assert report.confidence_score == 1.0
    assert len(report.checks) == 6
    assert report.failed_checks == []
    assert report.summary == "You meet all critical eligibility criteria for this study."

def test_scenario_c_hba1c_fails_critically(patient_c, criteria_b):
    report = check_eligibility(patient_c, criteria_b)

    assert report.is_eligible is False
    [failed] = report.failed_checks
    assert failed.criterion == "Biomarker: HbA1c"
    assert failed.critical is True
    assert "outside required range 7-10" in failed.reason
    assert report.confidence_score == pytest.approx(5 / 6)
    assert report.summary == "You do not meet the following requirement: Biomarker: HbA1c"

def test_summary_counts_several_critical_failures(patient_b, criteria_b):
    patient = patient_b.model_copy(update={"hba1c": 11, "bmi": 45, "medications": ["WARFARIN"]})
    report = check_eligibility(patient, criteria_b)
    assert len(report.critical_failures) == 3
    assert report.summary == "You do not meet 3 critical requirements for this study."

# ═══════════════════════════════════════════════════════════════════════════════
# PREDICATES
# ═══════════════════════════════════════════════════════════════════════════════

def test_range_bounds_are_inclusive():
    criteria = EligibilityCriteria(ldl_range=NumericRange(min=0, max=130))
    assert check_eligibility(PatientMedicalData(ldl=0), criteria).is_eligible
    assert check_eligibility(PatientMedicalData(ldl=130), criteria).is_eligible
    assert not check_eligibility(PatientMedicalData(ldl=130.01), criteria).is_eligible

def test_token_matching_is_case_insensitive():
    criteria = EligibilityCriteria(requiredDiagnoses=["e11.9"], excludedAllergies=["Penicillin"])
    patient = PatientMedicalData(diagnoses=["E11.9"], allergies=["PENICILLIN"])
    report = check_eligibility(patient, criteria)

    by_name = {c.criterion: c for c in report.checks}
    assert by_name["Required Diagnosis: e11.9"].met is True
    assert by_name["Excluded Allergy: Penicillin"].met is False

def test_required_medication_is_soft():
    criteria = EligibilityCriteria(requiredMedications=["METFORMIN"], hba1cRange=[7, 10])
    patient = PatientMedicalData(hba1c=8, medications=["LISINOPRIL"])
    report = check_eligibility(patient, criteria)

    assert report.is_eligible is True
    [failed] = report.failed_checks
    assert failed.critical is False
    assert report.confidence_score == 0.5

def test_age_range_is_critical():
    criteria = EligibilityCriteria(ageRange=[18, 65])
    report = check_eligibility(PatientMedicalData(age=70), criteria)
    assert not report.is_eligible
    assert report.critical_failures[0].criterion == "Age Range"

# ═══════════════════════════════════════════════════════════════════════════════
# MISSING DATA: PRE-CHECK VS. STRICT GATE
# ═══════════════════════════════════════════════════════════════════════════════

def test_precheck_skips_missing_data(criteria_b, patient_b):
    patient = patient_b.model_copy(update={"hba1c": None, "allergies": None})
    report = check_eligibility(patient, criteria_b)

    assert report.is_eligible is True
    assert {c.criterion for c in report.skipped_checks} == {
        "Biomarker: HbA1c", "Excluded Allergy: METFORMIN",
    }
    assert report.confidence_score == 1.0
    assert "2 criteria could not be evaluated" in report.summary

def test_strict_gate_fails_missing_data(criteria_b, patient_b):
    patient = patient_b.model_copy(update={"hba1c": None})
    report = check_eligibility_strict(patient, criteria_b)

    assert report.is_eligible is False
    assert [c.criterion for c in report.critical_failures] == ["Biomarker: HbA1c"]
    assert report.skipped_checks == []

def test_nothing_evaluated_gives_zero_confidence():
    report = check_eligibility(PatientMedicalData(), EligibilityCriteria(bmiRange=[18, 30]))
    assert report.is_eligible is True
    assert report.confidence_score == 0.0

def test_no_criteria_no_checks(patient_b):
    report = check_eligibility(patient_b, EligibilityCriteria())
    assert report.checks == []
    assert report.is_eligible is True

# ═══════════════════════════════════════════════════════════════════════════════
# SCHEMAS
# ═══════════════════════════════════════════════════════════════════════════════

def test_range_accepts_pair_and_mapping():
    assert NumericRange.model_validate([7, 10]) == NumericRange(min=7, max=10)
    assert NumericRange.model_validate({"min": 7, "max": 10}).contains(10)

def test_range_rejects_inverted_bounds():
    with pytest.raises(ValueError):
        NumericRange(min=10, max=7)

def test_camel_case_aliases():
    patient = PatientMedicalData.model_validate({"systolicBP": 120, "heartRate": 70})
    assert patient.systolic_bp == 120 and patient.heart_rate == 70
