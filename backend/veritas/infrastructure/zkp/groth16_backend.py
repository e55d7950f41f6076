"""
Groth16 eligibility-code backend (pairing-based, BN254) via snarkjs.

Circuit: eligibility_code.circom
    private  code[4]            eligibility code (one digest per bucket)
    public   requiredCodeHash   Poseidon(code), the study's published commitment

Proving runs `snarkjs groth16 fullprove` (witness generation + proof) and
verification runs `snarkjs groth16 verify`, both on files. The circuit WASM,
proving key and verification key are fetched once by initialize() and
materialized into a private temporary directory owned by this backend.
Witness files live in a per-call temporary directory removed on exit.
"""

import asyncio
import json
import logging
import shlex
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from veritas.core.config import settings
from veritas.core.crypto.field import is_field_element
from veritas.core.errors import KeyLoadError, ProofBackendError, ProofGenerationError, ValidationError
from veritas.infrastructure.zkp.base import ProofBackend
from veritas.infrastructure.zkp.key_store import KeyStore
from veritas.schemas.zkp import (
    EligibilityPublicInputs,
    EligibilityWitness,
    Groth16Artifact,
    Groth16Proof,
    ProofBackendKind,
)

logger = logging.getLogger(__name__)

CODE_LENGTH: int = 4
WASM_MAGIC: bytes = b"\x00asm"
ZKEY_MAGIC: bytes = b"zkey"


@dataclass
class Groth16KeyMaterial:
    """Circuit artifacts materialized on disk for the snarkjs CLI."""
    directory: Path
    wasm_path: Path
    zkey_path: Path
    vkey_path: Path
    verification_key: Dict[str, Any] = field(repr=False)


def parse_verification_key(blob: bytes) -> Dict[str, Any]:
    """Validate a snarkjs verification_key.json for the eligibility circuit."""
    try:
        vkey = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise KeyLoadError("Verification key is not valid JSON") from exc

    if not isinstance(vkey, dict) or vkey.get("protocol") != "groth16":
        raise KeyLoadError("Verification key is not a groth16 key")
    if vkey.get("curve", "bn128") != "bn128":
        raise KeyLoadError(f"Unsupported curve {vkey.get('curve')}")
    if "nPublic" in vkey and int(vkey["nPublic"]) != 1:
        raise KeyLoadError(f"Verification key expects {vkey['nPublic']} public inputs, circuit has 1")
    return vkey


class Groth16Backend(ProofBackend):
    """
    Eligibility-code prover and verifier backed by the snarkjs CLI.

    Usage:
        backend = Groth16Backend()
        await backend.initialize()
        artifact = await backend.generate_proof(
            EligibilityWitness(code), EligibilityPublicInputs(commitment),
        )
        result = await backend.verify_proof(artifact, EligibilityPublicInputs(commitment))
    """

    kind = ProofBackendKind.GROTH16

    def __init__(
        self,
        key_store: Optional[KeyStore] = None,
        wasm_uri: Optional[str] = None,
        zkey_uri: Optional[str] = None,
        vkey_uri: Optional[str] = None,
        snarkjs_command: Optional[str] = None,
        timeout: Optional[float] = None,
        runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
        executor=None,
    ) -> None:
        super().__init__(key_store=key_store, executor=executor)
        self.wasm_uri = wasm_uri or settings.GROTH16_WASM_URI
        self.zkey_uri = zkey_uri or settings.GROTH16_ZKEY_URI
        self.vkey_uri = vkey_uri or settings.GROTH16_VKEY_URI
        self.snarkjs_command = shlex.split(snarkjs_command or settings.SNARKJS_COMMAND)
        self.timeout = timeout or settings.SNARKJS_TIMEOUT_SECONDS
        self._runner = runner or subprocess.run
        self._keys: Optional[Groth16KeyMaterial] = None

    # ── Keys ──

    async def _load_keys(self) -> None:
        wasm, zkey, vkey_blob = await self.key_store.fetch_many(
            [self.wasm_uri, self.zkey_uri, self.vkey_uri]
        )
        if not wasm.startswith(WASM_MAGIC):
            raise KeyLoadError(f"Circuit WASM is corrupted: {self.wasm_uri}")
        if not zkey.startswith(ZKEY_MAGIC):
            raise KeyLoadError(f"Proving key is not a zkey file: {self.zkey_uri}")
        vkey = parse_verification_key(vkey_blob)

        loop = asyncio.get_running_loop()
        self._keys = await loop.run_in_executor(
            self._executor, self._materialize, wasm, zkey, vkey_blob, vkey,
        )

    @staticmethod
    def _materialize(wasm: bytes, zkey: bytes, vkey_blob: bytes, vkey: Dict[str, Any]) -> Groth16KeyMaterial:
        directory = Path(tempfile.mkdtemp(prefix="veritas-groth16-"))
        wasm_path = directory / "eligibility_code.wasm"
        zkey_path = directory / "eligibility.zkey"
        vkey_path = directory / "verification_key.json"
        wasm_path.write_bytes(wasm)
        zkey_path.write_bytes(zkey)
        vkey_path.write_bytes(vkey_blob)
        return Groth16KeyMaterial(
            directory=directory,
            wasm_path=wasm_path,
            zkey_path=zkey_path,
            vkey_path=vkey_path,
            verification_key=vkey,
        )

    def _discard_keys(self) -> None:
        if self._keys is not None:
            shutil.rmtree(self._keys.directory, ignore_errors=True)
        self._keys = None

    def _key_status(self) -> Dict[str, bool]:
        loaded = self._keys is not None
        return {"wasmLoaded": loaded, "pkLoaded": loaded, "vkLoaded": loaded}

    def close(self) -> None:
        """Remove materialized key files. The backend must be re-initialized afterwards."""
        self._reset()

    # ── Validation ──

    def _validate_inputs(self, private_inputs: EligibilityWitness, public_inputs: EligibilityPublicInputs) -> None:
        if not isinstance(private_inputs, EligibilityWitness):
            raise ProofGenerationError("Expected an EligibilityWitness", backend=self.kind.value)
        code = private_inputs.code
        if len(code) != CODE_LENGTH:
            raise ProofGenerationError(
                f"Eligibility code must have exactly {CODE_LENGTH} elements",
                backend=self.kind.value,
            )
        if not all(is_field_element(element) for element in code):
            raise ProofGenerationError(
                "Eligibility code element is outside the BN254 scalar field",
                backend=self.kind.value,
            )
        if not isinstance(public_inputs, EligibilityPublicInputs) or not is_field_element(
            public_inputs.required_code_hash
        ):
            raise ProofGenerationError(
                "Required code hash is outside the BN254 scalar field",
                backend=self.kind.value,
            )

    def _validate_public_inputs(self, public_inputs: EligibilityPublicInputs) -> None:
        if not isinstance(public_inputs, EligibilityPublicInputs) or not is_field_element(
            public_inputs.required_code_hash
        ):
            raise ValidationError(
                "Required code hash is outside the BN254 scalar field",
                component="proof_backend",
                backend=self.kind.value,
            )

    # ── snarkjs ──

    def _snarkjs(self, *args: str) -> subprocess.CompletedProcess:
        command = [*self.snarkjs_command, *args]
        try:
            return self._runner(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ProofBackendError(
                f"Could not run snarkjs: {exc}", backend=self.kind.value,
            ) from exc

    def _prove(self, witness: EligibilityWitness, public_inputs: EligibilityPublicInputs) -> Groth16Artifact:
        keys = self._keys
        if keys is None:
            raise ProofGenerationError("Keys were discarded", backend=self.kind.value)

        circuit_input = {
            "code": [str(c) for c in witness.code],
            "requiredCodeHash": str(public_inputs.required_code_hash),
        }

        with tempfile.TemporaryDirectory(prefix="veritas-proof-") as tmp:
            workdir = Path(tmp)
            input_path = workdir / "input.json"
            proof_path = workdir / "proof.json"
            public_path = workdir / "public.json"
            input_path.write_text(json.dumps(circuit_input))

            result = self._snarkjs(
                "groth16", "fullprove",
                str(input_path), str(keys.wasm_path), str(keys.zkey_path),
                str(proof_path), str(public_path),
            )
            if result.returncode != 0 or not proof_path.exists():
                stderr = (result.stderr or result.stdout or "").strip() or "unknown snarkjs error"
                raise ProofGenerationError(
                    f"snarkjs fullprove failed: {stderr}", backend=self.kind.value,
                )

            proof = json.loads(proof_path.read_text())
            public_signals: List[str] = [str(s) for s in json.loads(public_path.read_text())]

        return Groth16Artifact(proof=Groth16Proof(**proof), public_signals=public_signals)

    def _verify(
        self,
        artifact: Groth16Artifact,
        public_inputs: EligibilityPublicInputs,
    ) -> Tuple[bool, Optional[Dict[str, Any]]]:
        keys = self._keys
        if keys is None:
            raise ProofBackendError("Keys were discarded", backend=self.kind.value)

        with tempfile.TemporaryDirectory(prefix="veritas-verify-") as tmp:
            workdir = Path(tmp)
            proof_path = workdir / "proof.json"
            public_path = workdir / "public.json"
            proof_path.write_text(json.dumps(artifact.proof.model_dump()))
            public_path.write_text(json.dumps(public_inputs.to_signals()))

            result = self._snarkjs(
                "groth16", "verify", str(keys.vkey_path), str(public_path), str(proof_path),
            )

        output = f"{result.stdout or ''}\n{result.stderr or ''}".strip()
        if result.returncode == 0 and "OK" in (result.stdout or ""):
            return True, {"verifier": "snarkjs"}
        if "Invalid proof" in output:
            return False, {"verifier": "snarkjs"}

        raise ProofBackendError(
            f"snarkjs verify failed: {output or 'no output'}", backend=self.kind.value,
        )
