"""
Authentication Package.

Exports the IdentityGateway.
"""

from .gateway import IdentityGateway

__all__ = ["IdentityGateway"]
