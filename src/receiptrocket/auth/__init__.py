"""Identity verification for receipt operations."""

from .verifier import JwtIdentityVerifier, VerifiedIdentity, bearer_token

__all__ = ["JwtIdentityVerifier", "VerifiedIdentity", "bearer_token"]
