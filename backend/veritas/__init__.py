"""
VERITAS — eligibility commitment-and-proof engine.

Proves that a patient meets a clinical study's eligibility criteria without
revealing the underlying medical data, and prepares the proof for the
study's on-chain verifier.
"""

__version__ = "0.1.0"
