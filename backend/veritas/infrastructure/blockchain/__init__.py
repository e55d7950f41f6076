"""
On-chain verifier access.

Public API:
    - OnChainVerifier: read-only calls to the deployed verifier contracts.
"""

from veritas.infrastructure.blockchain.verifier_contracts import OnChainVerifier

__all__ = ["OnChainVerifier"]
