"""
Halo2/Plonk age-range backend (polynomial-commitment based).

Circuit: AgeRangeCircuit
    private  age
    public   min_age, max_age, study_id

The prover is a native module (Mopro bindings, built with maturin) loaded
by name on initialize(), the same way optional native crypto modules are
discovered elsewhere in the backend. It is expected to expose:

    generate_eligibility_proof(srs: bytes, pk: bytes, inputs: dict[str, list[str]])
        -> tuple[bytes, bytes]          # (proof, public inputs)
    verify_eligibility_proof(srs: bytes, vk: bytes, proof: bytes, public_inputs: bytes)
        -> bool

Public inputs travel as concatenated 32-byte little-endian field elements
in circuit order [min_age, max_age, study_id], which binds every proof to
one study: verifying against another study id fails.
"""

import importlib
import logging
from typing import Any, Dict, Optional, Tuple

from veritas.core.config import settings
from veritas.core.crypto.field import encode_field_elements_le, is_field_element
from veritas.core.errors import KeyLoadError, ProofGenerationError, ValidationError
from veritas.infrastructure.zkp.base import ProofBackend
from veritas.infrastructure.zkp.key_store import KeyStore
from veritas.schemas.zkp import (
    AgeRangePublicInputs,
    AgeWitness,
    Halo2Artifact,
    ProofBackendKind,
)

logger = logging.getLogger(__name__)

MAX_PLAUSIBLE_AGE: int = 150


def _load_engine(module_name: str) -> Any:
    """Import the native proving module, failing as a key-load problem."""
    try:
        engine = importlib.import_module(module_name)
    except ImportError as exc:
        raise KeyLoadError(f"Native proving module '{module_name}' not found") from exc
    for attr in ("generate_eligibility_proof", "verify_eligibility_proof"):
        if not hasattr(engine, attr):
            raise KeyLoadError(f"Native proving module '{module_name}' lacks {attr}()")
    logger.info(f"[ZKP-HALO2] Native module '{module_name}' loaded")
    return engine


class Halo2AgeRangeBackend(ProofBackend):
    """
    Age-range prover and verifier over the native Halo2 engine.

    Usage:
        backend = Halo2AgeRangeBackend()
        await backend.initialize()
        public = AgeRangePublicInputs(min_age=18, max_age=65, study_id=1)
        artifact = await backend.generate_proof(AgeWitness(35), public)
        result = await backend.verify_proof(artifact, public)
    """

    kind = ProofBackendKind.HALO2

    def __init__(
        self,
        key_store: Optional[KeyStore] = None,
        srs_uri: Optional[str] = None,
        pk_uri: Optional[str] = None,
        vk_uri: Optional[str] = None,
        key_digests: Optional[Dict[str, str]] = None,
        engine: Any = None,
        engine_module: Optional[str] = None,
        executor=None,
    ) -> None:
        super().__init__(key_store=key_store, executor=executor)
        self.srs_uri = srs_uri or settings.HALO2_SRS_URI
        self.pk_uri = pk_uri or settings.HALO2_PK_URI
        self.vk_uri = vk_uri or settings.HALO2_VK_URI
        self.key_digests = key_digests or {}
        self.engine_module = engine_module or settings.HALO2_ENGINE_MODULE
        self._injected_engine = engine
        self._engine: Any = None
        self._srs: Optional[bytes] = None
        self._pk: Optional[bytes] = None
        self._vk: Optional[bytes] = None

    # ── Keys ──

    async def _load_keys(self) -> None:
        engine = self._injected_engine or _load_engine(self.engine_module)
        srs, pk, vk = await self.key_store.fetch_many(
            [self.srs_uri, self.pk_uri, self.vk_uri], digests=self.key_digests,
        )
        self._engine = engine
        self._srs, self._pk, self._vk = srs, pk, vk
        logger.info(
            f"[ZKP-HALO2] SRS: {len(srs)} bytes, PK: {len(pk)} bytes, VK: {len(vk)} bytes"
        )

    def _discard_keys(self) -> None:
        self._engine = None
        self._srs = self._pk = self._vk = None

    def _key_status(self) -> Dict[str, bool]:
        return {
            "srsLoaded": self._srs is not None,
            "pkLoaded": self._pk is not None,
            "vkLoaded": self._vk is not None,
        }

    # ── Validation ──

    def _check_public(self, public_inputs: AgeRangePublicInputs, error_cls, **kwargs) -> None:
        if not isinstance(public_inputs, AgeRangePublicInputs):
            raise error_cls("Expected AgeRangePublicInputs", backend=self.kind.value, **kwargs)
        values = public_inputs.to_field_elements()
        if not all(is_field_element(v) for v in values):
            raise error_cls("Age range inputs must be non-negative integers", backend=self.kind.value, **kwargs)
        if public_inputs.min_age > public_inputs.max_age:
            raise error_cls("min_age exceeds max_age", backend=self.kind.value, **kwargs)
        if public_inputs.max_age > MAX_PLAUSIBLE_AGE:
            raise error_cls(f"max_age exceeds {MAX_PLAUSIBLE_AGE}", backend=self.kind.value, **kwargs)
        if public_inputs.study_id <= 0:
            raise error_cls("study_id must be positive", backend=self.kind.value, **kwargs)

    def _validate_inputs(self, private_inputs: AgeWitness, public_inputs: AgeRangePublicInputs) -> None:
        self._check_public(public_inputs, ProofGenerationError)
        if not isinstance(private_inputs, AgeWitness) or not is_field_element(private_inputs.age):
            raise ProofGenerationError("Age must be a non-negative integer", backend=self.kind.value)
        if not public_inputs.min_age <= private_inputs.age <= public_inputs.max_age:
            raise ProofGenerationError(
                "Age is outside the declared range; the circuit would reject the witness",
                backend=self.kind.value,
            )

    def _validate_public_inputs(self, public_inputs: AgeRangePublicInputs) -> None:
        self._check_public(public_inputs, ValidationError, component="proof_backend")

    # ── Native engine ──

    def _prove(self, witness: AgeWitness, public_inputs: AgeRangePublicInputs) -> Halo2Artifact:
        engine, srs, pk = self._engine, self._srs, self._pk
        if engine is None or srs is None or pk is None:
            raise ProofGenerationError("Keys were discarded", backend=self.kind.value)

        circuit_input = {
            "age": [str(witness.age)],
            "min_age": [str(public_inputs.min_age)],
            "max_age": [str(public_inputs.max_age)],
            "study_id": [str(public_inputs.study_id)],
        }
        proof, public_blob = engine.generate_eligibility_proof(srs, pk, circuit_input)
        return Halo2Artifact(proof=bytes(proof), public_inputs=bytes(public_blob))

    def _verify(
        self,
        artifact: Halo2Artifact,
        public_inputs: AgeRangePublicInputs,
    ) -> Tuple[bool, Optional[Dict[str, Any]]]:
        engine, srs, vk = self._engine, self._srs, self._vk
        if engine is None or srs is None or vk is None:
            raise ValidationError("Keys were discarded", component="proof_backend", backend=self.kind.value)

        expected = encode_field_elements_le(public_inputs.to_field_elements())
        valid = engine.verify_eligibility_proof(srs, vk, artifact.proof, expected)
        return bool(valid), {
            "verifier": self.engine_module if self._injected_engine is None else "injected",
            "studyId": public_inputs.study_id,
        }
