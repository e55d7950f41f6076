"""
Application Service — one trial application attempt, end to end.

Pipeline:

    validate request ─▶ prerequisites ─▶ eligibility pre-check
        ─▶ commitment (strict gate) ─▶ match study commitment
        ─▶ Groth16 eligibility proof ─▶ Halo2 age-range proof
        ─▶ local verification ─▶ calldata translation ─▶ submission hand-off

Each stage short-circuits the rest. Failures come back as an
ApplicationResult tagged with an ApplicationErrorType plus the component
and backend that raised; this service is the only place where engine
errors are turned into a user-facing outcome, and it never reports
success unless every stage completed.

Only the commitment and translated calldata leave this service. The
eligibility code and raw patient values stay in the attempt's local
scope and are dropped when apply() returns.
"""

import asyncio
import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from veritas.core.config import settings
from veritas.core.crypto.hashing import CircuitHasher
from veritas.core.eligibility.codes import EligibilityCommitment, generate_commitment
from veritas.core.eligibility.evaluator import EligibilityReport, check_eligibility
from veritas.core.errors import (
    EligibilityEngineError,
    FormatTranslationError,
    IneligibleError,
    KeyLoadError,
    KeyNotLoadedError,
    ProofBackendError,
    ProofGenerationError,
    ProofVerificationError,
    ValidationError,
)
from veritas.infrastructure.blockchain.verifier_contracts import OnChainVerifier
from veritas.infrastructure.zkp.base import ProofBackend
from veritas.infrastructure.zkp.calldata import translate
from veritas.schemas.medical import EligibilityCriteria, PatientMedicalData
from veritas.schemas.zkp import (
    AgeRangePublicInputs,
    AgeWitness,
    EligibilityPublicInputs,
    EligibilityWitness,
    Groth16Calldata,
    Halo2Calldata,
)

logger = logging.getLogger(__name__)

MAX_PLAUSIBLE_AGE: int = 150


# ═══════════════════════════════════════════════════════════════════════════════
# DATA MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class ApplicationErrorType(str, Enum):
    """Stage at which an application attempt stopped."""
    PREREQUISITES = "PREREQUISITES"
    VALIDATION = "VALIDATION"
    INELIGIBLE = "INELIGIBLE"
    KEYS = "KEYS"
    PROOF_GENERATION = "PROOF_GENERATION"
    VERIFICATION = "VERIFICATION"
    FORMAT = "FORMAT"
    SUBMISSION = "SUBMISSION"
    UNKNOWN = "UNKNOWN"


class ApplicationRequest(BaseModel):
    """One application attempt. Patient data is private to this process."""
    model_config = ConfigDict(frozen=True)

    study_id: int
    user_address: str
    patient: PatientMedicalData = Field(..., repr=False)
    criteria: EligibilityCriteria
    required_commitment: Optional[int] = None   # study's published CodeCommitment


class PrerequisitesCheck(BaseModel):
    """Account / identity state gathered by the prerequisite collaborator."""
    has_did: bool = False
    is_verified: bool = False
    has_health_data: bool = False
    has_extension: bool = False
    missing_requirements: List[str] = Field(default_factory=list)

    @property
    def can_apply(self) -> bool:
        return not self.missing_requirements


class SubmissionBundle(BaseModel):
    """Everything the submission collaborator needs; nothing private."""
    model_config = ConfigDict(frozen=True)

    study_id: int
    commitment: int
    eligibility_calldata: Groth16Calldata
    age_calldata: Optional[Halo2Calldata] = None


class ApplicationResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    study_id: int
    error: Optional[str] = None
    error_type: Optional[ApplicationErrorType] = None
    component: Optional[str] = None
    backend: Optional[str] = None
    missing_requirements: List[str] = Field(default_factory=list)
    report: Optional[EligibilityReport] = None
    bundle: Optional[SubmissionBundle] = None
    receipt: Optional[str] = None
    applied_at: Optional[str] = None


class PrerequisiteChecker(Protocol):
    async def check(self, user_address: str) -> PrerequisitesCheck: ...


class SubmissionHandler(Protocol):
    async def submit(self, bundle: SubmissionBundle) -> str: ...


_ERROR_TYPES: Tuple[Tuple[type, ApplicationErrorType], ...] = (
    (ValidationError, ApplicationErrorType.VALIDATION),
    (IneligibleError, ApplicationErrorType.INELIGIBLE),
    (KeyNotLoadedError, ApplicationErrorType.KEYS),
    (KeyLoadError, ApplicationErrorType.KEYS),
    (ProofGenerationError, ApplicationErrorType.PROOF_GENERATION),
    (ProofVerificationError, ApplicationErrorType.VERIFICATION),
    (FormatTranslationError, ApplicationErrorType.FORMAT),
)


# ═══════════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════════

class ApplicationService:
    """
    Orchestrates a trial application over injected collaborators.

    Usage:
        service = ApplicationService(Groth16Backend(), age_backend=Halo2AgeRangeBackend())
        result = await service.apply(ApplicationRequest(...))
        if result.success:
            tx = result.receipt
    """

    def __init__(
        self,
        eligibility_backend: ProofBackend,
        age_backend: Optional[ProofBackend] = None,
        prerequisites: Optional[PrerequisiteChecker] = None,
        submitter: Optional[SubmissionHandler] = None,
        hasher: Optional[CircuitHasher] = None,
        verify_before_submit: Optional[bool] = None,
        onchain_verifier: Optional[OnChainVerifier] = None,
        executor=None,
    ) -> None:
        self.eligibility_backend = eligibility_backend
        self.age_backend = age_backend
        self.prerequisites = prerequisites
        self.submitter = submitter
        self.hasher = hasher
        self.verify_before_submit = (
            settings.VERIFY_BEFORE_SUBMIT if verify_before_submit is None else verify_before_submit
        )
        self.onchain_verifier = onchain_verifier
        self._executor = executor

    # ── Public operations ──

    def check(self, patient: PatientMedicalData, criteria: EligibilityCriteria) -> EligibilityReport:
        """Fast local pre-check; no cryptography, nothing leaves the process."""
        report = check_eligibility(patient, criteria)
        logger.info(
            f"[APPLICATION] Pre-check: eligible={report.is_eligible} "
            f"confidence={report.confidence_score:.2f}"
        )
        return report

    def status(self) -> Dict[str, Any]:
        """Key / readiness status of the configured proof backends."""
        backends = [self.eligibility_backend] + ([self.age_backend] if self.age_backend else [])
        return {
            "backends": [backend.status() for backend in backends],
            "ready": all(backend.is_ready for backend in backends),
        }

    @staticmethod
    def validate_request(request: ApplicationRequest) -> Optional[str]:
        """Return a message for an unusable request, None when it is well formed."""
        if request.study_id <= 0:
            return "Invalid study ID"
        if not Web3.is_address(request.user_address):
            return "Invalid Ethereum address"
        age = request.patient.age
        if age is not None and not 0 <= age <= MAX_PLAUSIBLE_AGE:
            return "Invalid age value"
        return None

    async def apply(self, request: ApplicationRequest) -> ApplicationResult:
        """Run one application attempt. Never raises for engine failures."""
        study_id = request.study_id

        validation_error = self.validate_request(request)
        if validation_error:
            logger.warning(f"[APPLICATION] Study {study_id}: request rejected ({validation_error})")
            return self._failure(
                study_id, validation_error, ApplicationErrorType.VALIDATION, component="validation",
            )

        if self.prerequisites is not None:
            try:
                prerequisites = await self.prerequisites.check(request.user_address)
            except Exception as exc:
                logger.error(f"[APPLICATION] Study {study_id}: prerequisite check failed: {exc}")
                return self._failure(
                    study_id, f"Could not check prerequisites: {exc}",
                    ApplicationErrorType.PREREQUISITES, component="prerequisites",
                )
            if not prerequisites.can_apply:
                logger.warning(
                    f"[APPLICATION] Study {study_id}: "
                    f"{len(prerequisites.missing_requirements)} prerequisite(s) missing"
                )
                return self._failure(
                    study_id,
                    "Prerequisites not met. Please complete the required steps.",
                    ApplicationErrorType.PREREQUISITES,
                    component="prerequisites",
                    missing_requirements=list(prerequisites.missing_requirements),
                )

        report = self.check(request.patient, request.criteria)
        if not report.is_eligible:
            logger.warning(f"[APPLICATION] Study {study_id}: not eligible")
            return self._failure(
                study_id, report.summary, ApplicationErrorType.INELIGIBLE,
                component="evaluator", report=report,
            )

        progress = {"stage": "proving"}
        try:
            bundle = await self._prove(request, progress)
        except EligibilityEngineError as exc:
            return self._engine_failure(study_id, exc, progress["stage"], report)
        except Exception as exc:
            logger.exception(f"[APPLICATION] Study {study_id}: unexpected failure")
            return self._failure(
                study_id, f"Failed to apply to trial: {exc}", ApplicationErrorType.UNKNOWN, report=report,
            )

        receipt = None
        if self.submitter is not None:
            try:
                receipt = await self.submitter.submit(bundle)
            except Exception as exc:
                logger.error(f"[APPLICATION] Study {study_id}: submission failed: {exc}")
                return self._failure(
                    study_id, f"Submission failed: {exc}", ApplicationErrorType.SUBMISSION,
                    component="submission", report=report,
                )

        logger.info(f"[APPLICATION] Study {study_id}: application ready for submission")
        return ApplicationResult(
            success=True,
            study_id=study_id,
            report=report,
            bundle=bundle,
            receipt=receipt,
            applied_at=datetime.now(timezone.utc).isoformat(),
        )

    # ── Proof pipeline ──

    async def _commit(self, request: ApplicationRequest) -> EligibilityCommitment:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, generate_commitment, request.patient, request.criteria, self.hasher,
        )

    @staticmethod
    def _age_inputs(request: ApplicationRequest) -> Tuple[AgeWitness, AgeRangePublicInputs]:
        """
        Whole-year witness and bounds for the age-range circuit.

        Age and both bounds are floored, so any age the evaluator accepted
        (min <= age <= max) also satisfies floor(min) <= floor(age) <= floor(max).
        """
        age_range = request.criteria.age_range
        min_age = max(math.floor(age_range.min), 0)
        max_age = min(math.floor(age_range.max), MAX_PLAUSIBLE_AGE)
        public = AgeRangePublicInputs(min_age=min_age, max_age=max_age, study_id=request.study_id)
        return AgeWitness(age=math.floor(request.patient.age)), public

    def _proves_age(self, request: ApplicationRequest) -> bool:
        # Studies without an age criterion never made an age decision to prove.
        return (
            self.age_backend is not None
            and request.criteria.age_range is not None
            and request.patient.age is not None
        )

    async def _prove(self, request: ApplicationRequest, progress: Dict[str, str]) -> SubmissionBundle:
        commitment = await self._commit(request)
        if request.required_commitment is not None and commitment.commitment != request.required_commitment:
            raise IneligibleError(
                "Eligibility code does not match the study's required commitment",
                component="commitment",
            )

        backend = self.eligibility_backend
        await backend.initialize()
        public = EligibilityPublicInputs(required_code_hash=commitment.commitment)
        artifact = await backend.generate_proof(EligibilityWitness(code=commitment.code), public)

        age_artifact = age_public = None
        if self._proves_age(request):
            await self.age_backend.initialize()
            witness, age_public = self._age_inputs(request)
            age_artifact = await self.age_backend.generate_proof(witness, age_public)

        if self.verify_before_submit:
            progress["stage"] = "verification"
            await self._verify(backend, artifact, public)
            if age_artifact is not None:
                await self._verify(self.age_backend, age_artifact, age_public)

        progress["stage"] = "translation"
        bundle = SubmissionBundle(
            study_id=request.study_id,
            commitment=commitment.commitment,
            eligibility_calldata=translate(artifact),
            age_calldata=translate(age_artifact) if age_artifact is not None else None,
        )

        if self.onchain_verifier is not None:
            progress["stage"] = "verification"
            await self._verify_onchain(bundle)
        return bundle

    @staticmethod
    async def _verify(backend: ProofBackend, artifact, public_inputs) -> None:
        result = await backend.verify_proof(artifact, public_inputs)
        if not result.valid:
            raise ProofVerificationError(
                "Generated proof failed local verification", backend=backend.kind.value,
            )

    async def _verify_onchain(self, bundle: SubmissionBundle) -> None:
        """Dry-run the translated calldata against the deployed verifiers (eth_call only)."""
        loop = asyncio.get_running_loop()
        checks = [(bundle.eligibility_calldata, "groth16")]
        if bundle.age_calldata is not None:
            checks.append((bundle.age_calldata, "halo2_plonk"))
        for calldata, backend in checks:
            valid = await loop.run_in_executor(self._executor, self.onchain_verifier.verify, calldata)
            if not valid:
                raise ProofVerificationError(
                    "Verifier contract rejected the proof", component="onchain", backend=backend,
                )

    # ── Results ──

    def _engine_failure(
        self,
        study_id: int,
        exc: EligibilityEngineError,
        stage: str,
        report: EligibilityReport,
    ) -> ApplicationResult:
        error_type = ApplicationErrorType.UNKNOWN
        for cls, mapped in _ERROR_TYPES:
            if isinstance(exc, cls):
                error_type = mapped
                break
        else:
            if isinstance(exc, ProofBackendError):
                error_type = (
                    ApplicationErrorType.VERIFICATION
                    if stage == "verification"
                    else ApplicationErrorType.PROOF_GENERATION
                )

        logger.error(f"[APPLICATION] Study {study_id}: {error_type.value} failure from {exc.component}")
        return self._failure(
            study_id, exc.message, error_type,
            component=exc.component, backend=exc.backend, report=report,
        )

    @staticmethod
    def _failure(
        study_id: int,
        error: str,
        error_type: ApplicationErrorType,
        **kwargs,
    ) -> ApplicationResult:
        return ApplicationResult(
            success=False, study_id=study_id, error=error, error_type=error_type, **kwargs,
        )
