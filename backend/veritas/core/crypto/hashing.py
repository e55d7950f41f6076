"""
Circuit-safe hashing for eligibility commitments.

The eligibility circuit recomputes Poseidon over the BN254 scalar field, so
the off-circuit side must produce exactly what circomlib produces. Rather
than re-deriving round constants in Python, the hash is delegated to the
reference `circomlibjs` implementation running under Node, the same
toolchain that compiled the circuit and that snarkjs runs on.

The hasher is pluggable: anything satisfying CircuitHasher can be passed to
the commitment generator (tests inject a deterministic field hasher).
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from typing import List, Optional, Protocol, Sequence

from veritas.core.config import settings
from veritas.core.crypto.field import is_field_element
from veritas.core.errors import ProofBackendError, ValidationError

logger = logging.getLogger(__name__)

# circomlib ships Poseidon constants for t = 2..17
POSEIDON_MAX_INPUTS: int = 16

_POSEIDON_SCRIPT = r"""
const { buildPoseidon } = require("circomlibjs");
let raw = "";
process.stdin.setEncoding("utf8");
process.stdin.on("data", (chunk) => { raw += chunk; });
process.stdin.on("end", async () => {
  const poseidon = await buildPoseidon();
  const batches = JSON.parse(raw);
  const out = batches.map(
    (b) => poseidon.F.toObject(poseidon(b.map((x) => BigInt(x)))).toString()
  );
  process.stdout.write(JSON.stringify(out));
});
"""


class CircuitHasher(Protocol):
    """Fixed-field, collision-resistant hash that the circuit can recompute."""

    def hash(self, inputs: Sequence[int]) -> int: ...

    def hash_many(self, batches: Sequence[Sequence[int]]) -> List[int]: ...


def validate_hash_inputs(inputs: Sequence[int]) -> None:
    """Reject arities and values the circuit hash cannot absorb."""
    if not 1 <= len(inputs) <= POSEIDON_MAX_INPUTS:
        raise ValidationError(
            f"Poseidon accepts 1..{POSEIDON_MAX_INPUTS} inputs, got {len(inputs)}",
            component="hasher",
        )
    for value in inputs:
        if not is_field_element(value):
            raise ValidationError(
                "Hash input is not a BN254 field element", component="hasher",
            )


class PoseidonHasher:
    """
    circomlib-compatible Poseidon computed by `circomlibjs` under Node.

    Each call to hash_many spawns one Node process for the whole batch, so
    callers that need several independent digests should batch them.
    """

    def __init__(
        self,
        node_binary: Optional[str] = None,
        node_path: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.node_binary = node_binary or settings.NODE_BINARY
        self.node_path = node_path if node_path is not None else settings.CIRCOMLIB_NODE_PATH
        self.timeout = timeout or settings.HASH_TIMEOUT_SECONDS

    def hash(self, inputs: Sequence[int]) -> int:
        return self.hash_many([inputs])[0]

    def hash_many(self, batches: Sequence[Sequence[int]]) -> List[int]:
        if not batches:
            return []
        for batch in batches:
            validate_hash_inputs(batch)

        payload = json.dumps([[str(v) for v in batch] for batch in batches])
        env = dict(os.environ)
        if self.node_path:
            env["NODE_PATH"] = self.node_path

        try:
            result = subprocess.run(
                [self.node_binary, "-e", _POSEIDON_SCRIPT],
                input=payload,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise ProofBackendError(
                f"Could not run Poseidon hasher: {exc}", component="hasher",
            ) from exc

        if result.returncode != 0:
            stderr = result.stderr.strip() or "unknown circomlibjs error"
            logger.error(f"[POSEIDON] Node exited with {result.returncode}")
            raise ProofBackendError(
                f"Poseidon hasher failed: {stderr}", component="hasher",
            )

        try:
            digests = [int(d) for d in json.loads(result.stdout)]
        except (ValueError, TypeError) as exc:
            raise ProofBackendError(
                "Poseidon hasher returned malformed output", component="hasher",
            ) from exc

        if len(digests) != len(batches):
            raise ProofBackendError(
                f"Poseidon hasher returned {len(digests)} digests for {len(batches)} inputs",
                component="hasher",
            )
        return digests


_default_hasher: Optional[PoseidonHasher] = None


def get_default_hasher() -> PoseidonHasher:
    """Lazily created shared hasher. It holds configuration only, no mutable state."""
    global _default_hasher
    if _default_hasher is None:
        _default_hasher = PoseidonHasher()
    return _default_hasher
