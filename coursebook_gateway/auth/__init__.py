"""Stateless token authentication: issuance and verification of signed identity tokens."""

from coursebook_gateway.auth.tokens import TokenService

__all__ = ["TokenService"]
