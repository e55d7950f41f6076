import hashlib
import json
import subprocess
from pathlib import Path

import pytest

from veritas.core.crypto.field import BN254_BASE_FIELD, BN254_SCALAR_FIELD, encode_field_elements_le
from veritas.core.crypto.hashing import validate_hash_inputs
from veritas.infrastructure.zkp.groth16_backend import Groth16Backend
from veritas.infrastructure.zkp.halo2_backend import Halo2AgeRangeBackend
from veritas.infrastructure.zkp.key_store import KeyStore
from veritas.schemas.medical import EligibilityCriteria, PatientMedicalData


# ═══════════════════════════════════════════════════════════════════════════════
# TEST DOUBLES
# ═══════════════════════════════════════════════════════════════════════════════

def _digest(*parts) -> int:
    raw = json.dumps([str(p) for p in parts]).encode()
    return int.from_bytes(hashlib.blake2b(raw, digest_size=32).digest(), "big")


class FakeHasher:
    """Deterministic field hash with the same arity rules as Poseidon. Records calls."""

    def __init__(self):
        self.calls = []

    def hash(self, inputs):
        return self.hash_many([inputs])[0]

    def hash_many(self, batches):
        for batch in batches:
            validate_hash_inputs(batch)
        self.calls.append([list(b) for b in batches])
        return [_digest(*batch) % BN254_SCALAR_FIELD for batch in batches]


class FakeSnarkjs:
    """
    Scripted stand-in for the snarkjs CLI.

    fullprove writes a proof derived from the circuit input; verify accepts
    a proof only together with the public signal it was issued for.
    """

    def __init__(self, always_invalid=False, prove_error=None, verify_output=None):
        self.calls = []
        self.issued = {}
        self.always_invalid = always_invalid
        self.prove_error = prove_error
        self.verify_output = verify_output

    def __call__(self, command, capture_output=True, text=True, timeout=None, check=False):
        self.calls.append(list(command))
        action = command[command.index("groth16") + 1]
        if action == "fullprove":
            return self._fullprove(command)
        return self._verify(command)

    def _fullprove(self, command):
        if self.prove_error:
            return subprocess.CompletedProcess(command, 1, stdout="", stderr=self.prove_error)

        input_path, proof_path, public_path = command[-5], command[-2], command[-1]
        circuit_input = json.loads(Path(input_path).read_text())
        public_signal = circuit_input["requiredCodeHash"]
        seed = circuit_input["code"] + [public_signal]

        def coord(tag):
            return str(_digest(tag, *seed) % BN254_BASE_FIELD)

        proof = {
            "pi_a": [coord("ax"), coord("ay"), "1"],
            "pi_b": [[coord("bx0"), coord("bx1")], [coord("by0"), coord("by1")], ["1", "0"]],
            "pi_c": [coord("cx"), coord("cy"), "1"],
            "protocol": "groth16",
            "curve": "bn128",
        }
        self.issued[public_signal] = proof
        Path(proof_path).write_text(json.dumps(proof))
        Path(public_path).write_text(json.dumps([public_signal]))
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    def _verify(self, command):
        if self.verify_output is not None:
            return subprocess.CompletedProcess(command, 1, stdout=self.verify_output, stderr="")

        public_path, proof_path = command[-2], command[-1]
        public = json.loads(Path(public_path).read_text())
        proof = json.loads(Path(proof_path).read_text())
        valid = not self.always_invalid and self.issued.get(public[0]) == proof
        if valid:
            return subprocess.CompletedProcess(command, 0, stdout="[INFO]  snarkJS: OK!\n", stderr="")
        return subprocess.CompletedProcess(command, 1, stdout="[ERROR] snarkJS: Invalid proof\n", stderr="")


class FakeHalo2Engine:
    """Native-module double: proofs commit to the encoded public inputs."""

    def __init__(self):
        self.prove_calls = 0
        self.verify_calls = 0

    @staticmethod
    def _proof_for(public_blob):
        return b"halo2:" + hashlib.sha256(public_blob).digest()

    def generate_eligibility_proof(self, srs, pk, inputs):
        self.prove_calls += 1
        age = int(inputs["age"][0])
        min_age, max_age = int(inputs["min_age"][0]), int(inputs["max_age"][0])
        if not min_age <= age <= max_age:
            raise RuntimeError("ConstraintSystemFailure")
        public_blob = encode_field_elements_le([min_age, max_age, int(inputs["study_id"][0])])
        return bytearray(self._proof_for(public_blob)), public_blob

    def verify_eligibility_proof(self, srs, vk, proof, public_inputs):
        self.verify_calls += 1
        return bytes(proof) == self._proof_for(public_inputs)


class _Call:
    def __init__(self, outcome):
        self.outcome = outcome

    def call(self):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class _Functions:
    def __init__(self, contract):
        self._contract = contract

    def __getattr__(self, name):
        def build(*args):
            self._contract.calls.append((name, args))
            return _Call(self._contract.outcome)
        return build


class _Contract:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []
        self.functions = _Functions(self)


class FakeWeb3:
    """Just enough of Web3 for read-only contract calls."""

    def __init__(self, outcome=True):
        self.contracts = {}
        self.outcome = outcome
        self.eth = self

    def contract(self, address, abi):
        return self.contracts.setdefault(address, _Contract(self.outcome))

    def is_connected(self):
        return True


class CountingKeyStore(KeyStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fetched = []

    async def fetch(self, uri, expected_sha256=None):
        self.fetched.append(uri)
        return await super().fetch(uri, expected_sha256)


# ═══════════════════════════════════════════════════════════════════════════════
# KEY MATERIAL
# ═══════════════════════════════════════════════════════════════════════════════

GROTH16_VKEY = {"protocol": "groth16", "curve": "bn128", "nPublic": 1, "vk_alpha_1": ["1", "2", "1"]}


def write_groth16_keys(directory: Path) -> None:
    (directory / "eligibility_code.wasm").write_bytes(b"\x00asm\x01\x00\x00\x00circuit")
    (directory / "eligibility.zkey").write_bytes(b"zkey\x01\x00\x00\x00proving-key")
    (directory / "verification_key.json").write_text(json.dumps(GROTH16_VKEY))


def write_halo2_keys(directory: Path) -> None:
    (directory / "srs.bin").write_bytes(b"srs" * 64)
    (directory / "pk.bin").write_bytes(b"pk" * 64)
    (directory / "vk.bin").write_bytes(b"vk" * 64)


def make_groth16_backend(directory: Path, runner, key_store=None) -> Groth16Backend:
    return Groth16Backend(
        key_store=key_store or KeyStore(base_dir=directory),
        wasm_uri="eligibility_code.wasm",
        zkey_uri="eligibility.zkey",
        vkey_uri="verification_key.json",
        snarkjs_command="snarkjs",
        timeout=5,
        runner=runner,
    )


def make_halo2_backend(directory: Path, engine, key_store=None, **kwargs) -> Halo2AgeRangeBackend:
    return Halo2AgeRangeBackend(
        key_store=key_store or KeyStore(base_dir=directory),
        srs_uri="srs.bin",
        pk_uri="pk.bin",
        vk_uri="vk.bin",
        engine=engine,
        **kwargs,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def hasher():
    return FakeHasher()


@pytest.fixture
def snarkjs():
    return FakeSnarkjs()


@pytest.fixture
def halo2_engine():
    return FakeHalo2Engine()


@pytest.fixture
def groth16_dir(tmp_path):
    directory = tmp_path / "groth16"
    directory.mkdir()
    write_groth16_keys(directory)
    return directory


@pytest.fixture
def halo2_dir(tmp_path):
    directory = tmp_path / "halo2"
    directory.mkdir()
    write_halo2_keys(directory)
    return directory


@pytest.fixture
def groth16_backend(groth16_dir, snarkjs):
    backend = make_groth16_backend(groth16_dir, snarkjs)
    yield backend
    backend.close()


@pytest.fixture
def halo2_backend(halo2_dir, halo2_engine):
    return make_halo2_backend(halo2_dir, halo2_engine)


@pytest.fixture
def patient_b():
    return PatientMedicalData(
        hba1c=8.2,
        ldl=115,
        bmi=31.5,
        diagnoses=["E11.9"],
        medications=["LISINOPRIL"],
        allergies=[],
    )


@pytest.fixture
def criteria_b():
    return EligibilityCriteria(
        hba1cRange=[7, 10],
        ldlRange=[0, 130],
        bmiRange=[25, 40],
        requiredDiagnoses=["E11.9"],
        excludedMedications=["WARFARIN"],
        excludedAllergies=["METFORMIN"],
    )


@pytest.fixture
def patient_c(patient_b):
    return patient_b.model_copy(update={"hba1c": 11})
