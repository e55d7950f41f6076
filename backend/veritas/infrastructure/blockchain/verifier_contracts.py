"""
Read-only access to the deployed proof verifier contracts.

    EligibilityCodeVerifier   verifyProof(uint[2], uint[2][2], uint[2], uint[1]) → bool
    AgeRangeVerifier          verify(bytes, uint256[]) → bool

Only `eth_call` is used here. Writing commitments or applications on-chain
belongs to the submission handler, which owns the signing account.
"""

import logging
from typing import Optional, Union

from web3 import Web3

from veritas.core.config import settings
from veritas.core.errors import ProofBackendError, ValidationError
from veritas.schemas.zkp import Groth16Calldata, Halo2Calldata

logger = logging.getLogger(__name__)

GROTH16_VERIFIER_ABI = [
    {
        "name": "verifyProof",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "_pA", "type": "uint256[2]"},
            {"name": "_pB", "type": "uint256[2][2]"},
            {"name": "_pC", "type": "uint256[2]"},
            {"name": "_pubSignals", "type": "uint256[1]"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

AGE_RANGE_VERIFIER_ABI = [
    {
        "name": "verify",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "proof", "type": "bytes"},
            {"name": "publicInputs", "type": "uint256[]"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


class OnChainVerifier:
    """
    Calls the verifier contracts with translated calldata.

    Usage:
        verifier = OnChainVerifier()
        ok = verifier.verify(translate(artifact))
    """

    def __init__(
        self,
        w3: Optional[Web3] = None,
        eligibility_verifier: Optional[str] = None,
        age_verifier: Optional[str] = None,
    ) -> None:
        self.w3 = w3 or Web3(Web3.HTTPProvider(settings.WEB3_PROVIDER_URL))
        self.eligibility_verifier = eligibility_verifier or settings.ELIGIBILITY_VERIFIER_CONTRACT
        self.age_verifier = age_verifier or settings.AGE_VERIFIER_CONTRACT

    def is_connected(self) -> bool:
        return self.w3.is_connected()

    def _contract(self, address: str, abi: list, name: str):
        if not address or not Web3.is_address(address):
            raise ValidationError(
                f"{name} contract address is not configured", component="onchain",
            )
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def verify_groth16(self, calldata: Groth16Calldata) -> bool:
        contract = self._contract(self.eligibility_verifier, GROTH16_VERIFIER_ABI, "Eligibility verifier")
        return self._call(contract.functions.verifyProof(*calldata.to_contract_args()), "groth16")

    def verify_halo2(self, calldata: Halo2Calldata) -> bool:
        contract = self._contract(self.age_verifier, AGE_RANGE_VERIFIER_ABI, "Age verifier")
        return self._call(contract.functions.verify(*calldata.to_contract_args()), "halo2_plonk")

    def verify(self, calldata: Union[Groth16Calldata, Halo2Calldata]) -> bool:
        if isinstance(calldata, Groth16Calldata):
            return self.verify_groth16(calldata)
        return self.verify_halo2(calldata)

    def _call(self, fn, backend: str) -> bool:
        try:
            valid = bool(fn.call())
        except Exception as exc:
            logger.error(f"[ONCHAIN] {backend} verifier call failed: {exc}")
            raise ProofBackendError(
                f"On-chain verifier call failed: {exc}", component="onchain", backend=backend,
            ) from exc
        logger.info(f"[ONCHAIN] {backend} verifier returned {'VALID' if valid else 'INVALID'}")
        return valid
