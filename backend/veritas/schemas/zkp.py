"""
Proof artifacts, proof inputs and verifier calldata.

ProofArtifact is a discriminated union tagged by `backend`:

    groth16      snarkjs proof (pi_a, pi_b, pi_c in projective form) plus
                 decimal public signals. Pairing-based, BN254.
    halo2_plonk  opaque proof blob plus public inputs encoded as 32-byte
                 little-endian field elements. Polynomial-commitment based.

Calldata models mirror the on-chain verifier signatures:

    Groth16Verifier.verifyProof(uint[2] pA, uint[2][2] pB, uint[2] pC, uint[1] pubSignals)
    AgeRangeVerifier.verify(bytes proof, uint256[] publicInputs)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class ProofBackendKind(str, Enum):
    """Proof system behind an artifact."""
    GROTH16 = "groth16"
    HALO2 = "halo2_plonk"


# ═══════════════════════════════════════════════════════════════════════════════
# NATIVE PROOF ARTIFACTS
# ═══════════════════════════════════════════════════════════════════════════════

class Groth16Proof(BaseModel):
    """snarkjs proof object, exactly as written to proof.json."""
    model_config = ConfigDict(frozen=True)

    pi_a: List[str]
    pi_b: List[List[str]]
    pi_c: List[str]
    protocol: str = "groth16"
    curve: str = "bn128"


class Groth16Artifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: Literal[ProofBackendKind.GROTH16] = ProofBackendKind.GROTH16
    proof: Groth16Proof
    public_signals: List[str]


class Halo2Artifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: Literal[ProofBackendKind.HALO2] = ProofBackendKind.HALO2
    proof: bytes
    public_inputs: bytes


ProofArtifact = Annotated[
    Union[Groth16Artifact, Halo2Artifact],
    Field(discriminator="backend"),
]


class VerificationResult(BaseModel):
    """Outcome of a local verification run."""
    valid: bool
    time_ms: float
    backend: ProofBackendKind
    detail: Optional[Dict[str, Any]] = None


# ═══════════════════════════════════════════════════════════════════════════════
# ON-CHAIN CALLDATA
# ═══════════════════════════════════════════════════════════════════════════════

class Groth16Calldata(BaseModel):
    """Positional arguments for `verifyProof(uint[2], uint[2][2], uint[2], uint[1])`."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    p_a: Tuple[int, int] = Field(..., alias="pA")
    p_b: Tuple[Tuple[int, int], Tuple[int, int]] = Field(..., alias="pB")
    p_c: Tuple[int, int] = Field(..., alias="pC")
    public_signals: Tuple[int, ...] = Field(..., alias="publicSignals")

    def to_contract_args(self) -> Tuple[list, list, list, list]:
        return (
            list(self.p_a),
            [list(pair) for pair in self.p_b],
            list(self.p_c),
            list(self.public_signals),
        )


class Halo2Calldata(BaseModel):
    """Arguments for `verify(bytes proof, uint256[] publicInputs)`."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    proof_bytes: bytes = Field(..., alias="proofBytes")
    public_inputs: Tuple[int, ...] = Field(..., alias="publicInputs")

    def to_contract_args(self) -> Tuple[bytes, list]:
        return self.proof_bytes, list(self.public_inputs)


ProofCalldata = Union[Groth16Calldata, Halo2Calldata]


# ═══════════════════════════════════════════════════════════════════════════════
# PROOF INPUTS
# ═══════════════════════════════════════════════════════════════════════════════
# Plain dataclasses: the backends validate them and raise ProofGenerationError,
# witnesses are kept out of repr.

@dataclass(frozen=True)
class EligibilityWitness:
    """Private input of the eligibility-code circuit."""
    code: Tuple[int, ...] = field(repr=False)


@dataclass(frozen=True)
class EligibilityPublicInputs:
    """Public input of the eligibility-code circuit: the required code hash."""
    required_code_hash: int

    def to_signals(self) -> List[str]:
        return [str(self.required_code_hash)]


@dataclass(frozen=True)
class AgeWitness:
    """Private input of the age-range circuit."""
    age: int = field(repr=False)


@dataclass(frozen=True)
class AgeRangePublicInputs:
    """Public inputs of the age-range circuit, bound to one study."""
    min_age: int
    max_age: int
    study_id: int

    def to_field_elements(self) -> List[int]:
        return [self.min_age, self.max_age, self.study_id]
