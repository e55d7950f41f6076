"""
Pydantic schemas for private patient data and study eligibility criteria.

PatientMedicalData is supplied per application attempt and never persisted
by the engine. EligibilityCriteria is defined once per study by the sponsor
and is read-only afterwards. Both accept the camelCase keys used by the
study wizard and the browser extension (`hba1cRange`, `systolicBP`, ...).

Numeric fields are grouped into the two numeric buckets of the eligibility
code. Field order inside a bucket is part of the circuit encoding and must
not change.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, model_validator


# --- Bucket membership (order is significant) ---
BIOMARKER_FIELDS: Tuple[str, ...] = ("hba1c", "cholesterol", "ldl", "hdl", "triglycerides")
VITAL_FIELDS: Tuple[str, ...] = ("systolic_bp", "diastolic_bp", "bmi", "heart_rate")

FIELD_LABELS: Dict[str, str] = {
    "age": "Age",
    "hba1c": "HbA1c",
    "cholesterol": "Total Cholesterol",
    "ldl": "LDL Cholesterol",
    "hdl": "HDL Cholesterol",
    "triglycerides": "Triglycerides",
    "systolic_bp": "Systolic Blood Pressure",
    "diastolic_bp": "Diastolic Blood Pressure",
    "bmi": "BMI",
    "heart_rate": "Heart Rate",
}

FIELD_UNITS: Dict[str, str] = {
    "age": "years",
    "hba1c": "%",
    "cholesterol": "mg/dL",
    "ldl": "mg/dL",
    "hdl": "mg/dL",
    "triglycerides": "mg/dL",
    "systolic_bp": "mmHg",
    "diastolic_bp": "mmHg",
    "bmi": "kg/m²",
    "heart_rate": "bpm",
}


class NumericRange(BaseModel):
    """
    Inclusive `[min, max]` bound for one numeric criterion.

    Accepts either `{"min": 7, "max": 10}` or a two-item sequence `[7, 10]`.
    """
    model_config = ConfigDict(frozen=True)

    min: FiniteFloat
    max: FiniteFloat

    @model_validator(mode="before")
    @classmethod
    def coerce_pair(cls, data):
        if isinstance(data, (list, tuple)):
            if len(data) != 2:
                raise ValueError("A range needs exactly two bounds: [min, max]")
            return {"min": data[0], "max": data[1]}
        return data

    @model_validator(mode="after")
    def check_order(self) -> "NumericRange":
        if self.min > self.max:
            raise ValueError(f"Range min ({self.min}) exceeds max ({self.max})")
        return self

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class PatientMedicalData(BaseModel):
    """Private medical data of one patient. Every field is optional."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    age: Optional[FiniteFloat] = Field(None, ge=0)

    # Biomarkers
    hba1c: Optional[FiniteFloat] = None
    cholesterol: Optional[FiniteFloat] = None
    ldl: Optional[FiniteFloat] = None
    hdl: Optional[FiniteFloat] = None
    triglycerides: Optional[FiniteFloat] = None

    # Vital signs
    systolic_bp: Optional[FiniteFloat] = Field(None, alias="systolicBP")
    diastolic_bp: Optional[FiniteFloat] = Field(None, alias="diastolicBP")
    bmi: Optional[FiniteFloat] = None
    heart_rate: Optional[FiniteFloat] = Field(None, alias="heartRate")

    # Coded lists
    medications: Optional[List[str]] = None   # e.g. ["METFORMIN", "LISINOPRIL"]
    allergies: Optional[List[str]] = None     # e.g. ["PENICILLIN", "SULFA"]
    diagnoses: Optional[List[str]] = None     # ICD-10, e.g. ["E11.9", "I10"]

    def value_of(self, field: str) -> Optional[float]:
        return getattr(self, field)


class EligibilityCriteria(BaseModel):
    """Study eligibility criteria. Absent criteria are simply not checked."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    age_range: Optional[NumericRange] = Field(None, alias="ageRange")

    # Biomarker ranges
    hba1c_range: Optional[NumericRange] = Field(None, alias="hba1cRange")
    cholesterol_range: Optional[NumericRange] = Field(None, alias="cholesterolRange")
    ldl_range: Optional[NumericRange] = Field(None, alias="ldlRange")
    hdl_range: Optional[NumericRange] = Field(None, alias="hdlRange")
    triglycerides_range: Optional[NumericRange] = Field(None, alias="triglyceridesRange")

    # Vital sign ranges
    systolic_bp_range: Optional[NumericRange] = Field(None, alias="systolicBPRange")
    diastolic_bp_range: Optional[NumericRange] = Field(None, alias="diastolicBPRange")
    bmi_range: Optional[NumericRange] = Field(None, alias="bmiRange")
    heart_rate_range: Optional[NumericRange] = Field(None, alias="heartRateRange")

    # Medication / allergy requirements
    required_medications: Optional[List[str]] = Field(None, alias="requiredMedications")
    excluded_medications: Optional[List[str]] = Field(None, alias="excludedMedications")
    excluded_allergies: Optional[List[str]] = Field(None, alias="excludedAllergies")

    # Diagnosis requirements
    required_diagnoses: Optional[List[str]] = Field(None, alias="requiredDiagnoses")
    excluded_diagnoses: Optional[List[str]] = Field(None, alias="excludedDiagnoses")

    def range_for(self, field: str) -> Optional[NumericRange]:
        return getattr(self, f"{field}_range")
