from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "VERITAS"

    # Circuit-safe hash (circomlibjs Poseidon via Node)
    NODE_BINARY: str = "node"
    CIRCOMLIB_NODE_PATH: Optional[str] = None
    HASH_TIMEOUT_SECONDS: float = 30.0

    # Groth16 backend (snarkjs)
    SNARKJS_COMMAND: str = "npx snarkjs"
    SNARKJS_TIMEOUT_SECONDS: float = 120.0
    GROTH16_WASM_URI: str = "zk/eligibility_code.wasm"
    GROTH16_ZKEY_URI: str = "zk/eligibility_0000.zkey"
    GROTH16_VKEY_URI: str = "zk/eligibility_verification_key.json"

    # Halo2 / Plonk age-range backend
    HALO2_ENGINE_MODULE: str = "mopro_py"
    HALO2_SRS_URI: str = "zk/plonk_clinical_trials_srs.bin"
    HALO2_PK_URI: str = "zk/plonk_eligibility_pk.bin"
    HALO2_VK_URI: str = "zk/plonk_eligibility_vk.bin"

    # Key material
    KEY_FETCH_TIMEOUT_SECONDS: float = 60.0

    # Web3 / on-chain verifiers
    WEB3_PROVIDER_URL: str = "http://127.0.0.1:8545"
    ELIGIBILITY_VERIFIER_CONTRACT: str = ""
    AGE_VERIFIER_CONTRACT: str = ""

    # Application flow
    VERIFY_BEFORE_SUBMIT: bool = True

    class Config:
        case_sensitive = True
        env_file = ".env"

settings = Settings()
