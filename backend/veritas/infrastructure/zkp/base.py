"""
Proof Backend Adapter — common lifecycle for proving systems.

State machine:

    UNINITIALIZED ──initialize()──▶ KEYS_LOADING ──keys ok──▶ READY
          ▲                               │
          └────────── load failed ────────┘

    * generate_proof / verify_proof are only valid in READY; otherwise
      KeyNotLoadedError.
    * initialize() in READY is a no-op. Concurrent calls while loading all
      await the same in-flight load (single-flight); the load is shielded
      so a caller abandoning its await does not cancel it for the others.
    * A failed load returns the backend to UNINITIALIZED so a later call
      can retry; it never leaves the adapter half-ready. A load cancelled
      with its event loop counts as failed, and a load owned by another
      loop is replaced rather than awaited.

Proving and verification are CPU-bound and run in an executor, so the
caller's event loop is never blocked. Each call is independent once keys
are loaded; the only shared mutable state is the key material itself,
owned by the backend instance (no module-level singletons).
"""

import asyncio
import functools
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from veritas.core.errors import (
    EligibilityEngineError,
    KeyLoadError,
    KeyNotLoadedError,
    ProofBackendError,
    ProofGenerationError,
    ValidationError,
)
from veritas.infrastructure.zkp.key_store import KeyStore
from veritas.schemas.zkp import ProofBackendKind, VerificationResult

logger = logging.getLogger(__name__)


class BackendState(str, Enum):
    UNINITIALIZED = "uninitialized"
    KEYS_LOADING = "keys_loading"
    READY = "ready"


def _retrieve_exception(future: asyncio.Future) -> None:
    # Keeps asyncio quiet when every awaiting caller was cancelled.
    if not future.cancelled():
        future.exception()


class ProofBackend(ABC):
    """
    Narrow capability interface shared by every proving system.

    Subclasses implement key loading, input validation and the blocking
    prove/verify calls; this class owns state, timing, offloading and
    error tagging.
    """

    kind: ProofBackendKind

    def __init__(
        self,
        key_store: Optional[KeyStore] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.key_store = key_store or KeyStore()
        self._executor = executor
        self._state = BackendState.UNINITIALIZED
        self._loading: Optional[asyncio.Future] = None
        self._load_count = 0

    # ── Lifecycle ──

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is BackendState.READY

    @property
    def load_count(self) -> int:
        """Number of key loads started so far."""
        return self._load_count

    async def initialize(self) -> None:
        """Load key material once. Safe to call repeatedly and concurrently."""
        if self._state is BackendState.READY:
            return
        loop = asyncio.get_running_loop()
        loading = self._loading
        if loading is None or loading.done() or loading.get_loop() is not loop:
            # A load left behind by a closed event loop is never awaited again.
            self._state = BackendState.KEYS_LOADING
            loading = self._loading = loop.create_task(self._run_load())
            loading.add_done_callback(_retrieve_exception)
        await asyncio.shield(loading)

    async def _run_load(self) -> None:
        task = asyncio.current_task()
        self._load_count += 1
        started = time.perf_counter()
        try:
            await self._load_keys()
        except KeyLoadError as exc:
            self._reset(task)
            logger.error(f"[ZKP-{self.kind.value.upper()}] Key loading failed: {exc.message}")
            raise KeyLoadError(exc.message, backend=self.kind.value, details=exc.details) from exc
        except asyncio.CancelledError:
            self._reset(task)
            logger.warning(f"[ZKP-{self.kind.value.upper()}] Key loading cancelled")
            raise
        except Exception as exc:
            self._reset(task)
            logger.error(f"[ZKP-{self.kind.value.upper()}] Key loading failed: {exc}")
            raise KeyLoadError(f"Key loading failed: {exc}", backend=self.kind.value) from exc

        self._state = BackendState.READY
        if self._loading is task:
            self._loading = None
        elapsed = (time.perf_counter() - started) * 1000
        logger.info(f"[ZKP-{self.kind.value.upper()}] Keys loaded in {elapsed:.0f}ms")

    def _reset(self, task: Optional[asyncio.Future] = None) -> None:
        # A superseded load must not undo the one that replaced it.
        if task is not None and self._loading is not task:
            return
        self._discard_keys()
        self._state = BackendState.UNINITIALIZED
        self._loading = None

    def _require_ready(self) -> None:
        if self._state is not BackendState.READY:
            raise KeyNotLoadedError(
                "ZK proof system not initialized. Call initialize() first.",
                backend=self.kind.value,
            )

    def status(self) -> Dict[str, Any]:
        """Backend state plus which key blobs are held."""
        return {"backend": self.kind.value, "state": self._state.value, **self._key_status()}

    # ── Proving / verification ──

    async def generate_proof(self, private_inputs, public_inputs):
        """
        Produce a proof artifact.

        Raises:
            KeyNotLoadedError: initialize() has not completed.
            ProofGenerationError: witness rejected (before any cryptographic
                work) or the prover failed.
        """
        self._require_ready()
        self._validate_inputs(private_inputs, public_inputs)

        started = time.perf_counter()
        try:
            artifact = await self._run_blocking(self._prove, private_inputs, public_inputs)
        except EligibilityEngineError:
            raise
        except Exception as exc:
            logger.error(f"[ZKP-{self.kind.value.upper()}] Proof generation failed: {exc}")
            raise ProofGenerationError(
                f"Proof generation failed: {exc}", backend=self.kind.value,
            ) from exc

        elapsed = (time.perf_counter() - started) * 1000
        logger.info(f"[ZKP-{self.kind.value.upper()}] Proof generated in {elapsed:.0f}ms")
        return artifact

    async def verify_proof(self, artifact, public_inputs) -> VerificationResult:
        """
        Verify an artifact against the expected public inputs.

        A completed run returns VerificationResult(valid=...). Exceptions mean
        verification could not be attempted.
        """
        self._require_ready()
        if getattr(artifact, "backend", None) != self.kind:
            raise ValidationError(
                f"Artifact is not a {self.kind.value} proof",
                component="proof_backend",
                backend=self.kind.value,
            )
        self._validate_public_inputs(public_inputs)

        started = time.perf_counter()
        try:
            valid, detail = await self._run_blocking(self._verify, artifact, public_inputs)
        except EligibilityEngineError:
            raise
        except Exception as exc:
            logger.error(f"[ZKP-{self.kind.value.upper()}] Verification could not run: {exc}")
            raise ProofBackendError(
                f"Proof verification failed to run: {exc}", backend=self.kind.value,
            ) from exc

        elapsed = (time.perf_counter() - started) * 1000
        logger.info(
            f"[ZKP-{self.kind.value.upper()}] Proof {'VALID' if valid else 'INVALID'} "
            f"(verified in {elapsed:.0f}ms)"
        )
        return VerificationResult(
            valid=bool(valid), time_ms=round(elapsed, 2), backend=self.kind, detail=detail,
        )

    async def _run_blocking(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    # ── Backend specifics ──

    @abstractmethod
    async def _load_keys(self) -> None: ...

    @abstractmethod
    def _discard_keys(self) -> None: ...

    @abstractmethod
    def _key_status(self) -> Dict[str, bool]: ...

    @abstractmethod
    def _validate_inputs(self, private_inputs, public_inputs) -> None: ...

    @abstractmethod
    def _validate_public_inputs(self, public_inputs) -> None: ...

    @abstractmethod
    def _prove(self, private_inputs, public_inputs): ...

    @abstractmethod
    def _verify(self, artifact, public_inputs) -> Tuple[bool, Optional[Dict[str, Any]]]: ...
