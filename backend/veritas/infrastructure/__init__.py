"""
VERITAS Infrastructure Module.

Adapters around external engines: snarkjs and the native Halo2 prover
(`zkp`), key-material storage, and the on-chain verifier contracts
(`blockchain`).
"""
