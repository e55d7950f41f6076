"""
Error taxonomy for the eligibility commitment-and-proof engine.

Every failure raised by the engine derives from EligibilityEngineError and
carries the component that raised it (and, for proof failures, the backend)
so the application service can report where an attempt stopped without
inspecting private data.

    ValidationError          malformed input (code length, field range, ...)
    IneligibleError          a critical eligibility check failed
    KeyNotLoadedError        backend used before initialize() completed
    KeyLoadError             key material missing, unreadable or corrupted
    ProofGenerationError     witness rejected or prover failed
    ProofVerificationError   verification ran and returned False
    FormatTranslationError   proof could not be mapped to verifier calldata
    ProofBackendError        the external engine could not be run at all
"""

from typing import Any, Dict, List, Optional


class EligibilityEngineError(Exception):
    """Base class for all engine failures."""

    default_component = "engine"

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        backend: Optional[str] = None,
        details: Dict[str, Any] = None,
    ):
        self.message = message
        self.component = component or self.default_component
        self.backend = backend
        self.details = details or {}
        tag = f"{self.component}:{backend}" if backend else self.component
        super().__init__(f"[{tag}] {message}")


class ValidationError(EligibilityEngineError):
    """Raised for malformed inputs (wrong code length, non-field values, bad UTF-8)."""
    default_component = "validation"


class IneligibleError(EligibilityEngineError):
    """
    Raised when a critical eligibility check failed.

    `failed_checks` holds the evaluator records for user guidance; they are
    the same records the pre-check already exposes.
    """

    default_component = "evaluator"

    def __init__(self, message: str, failed_checks: List[Any] = None, **kwargs):
        self.failed_checks = list(failed_checks or [])
        super().__init__(message, **kwargs)


class KeyNotLoadedError(EligibilityEngineError):
    """Raised when a backend is used before its keys are loaded."""
    default_component = "proof_backend"


class KeyLoadError(EligibilityEngineError):
    """Raised when key material cannot be fetched or fails validation."""
    default_component = "key_store"


class ProofGenerationError(EligibilityEngineError):
    """Raised when a witness is rejected or the prover fails."""
    default_component = "proof_backend"


class ProofVerificationError(EligibilityEngineError):
    """Raised when verification completed and the proof is invalid."""
    default_component = "proof_backend"


class FormatTranslationError(EligibilityEngineError):
    """Raised when a proof does not fit the on-chain calldata layout."""
    default_component = "translator"


class ProofBackendError(EligibilityEngineError):
    """Raised when an external engine (Node, snarkjs, native module, RPC) could not run."""
    default_component = "proof_backend"
