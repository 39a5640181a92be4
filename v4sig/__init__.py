"""
AWS Signature Version 4 - Standalone Request Signer

This package computes AWS Signature Version 4 authorization values for a
request descriptor without depending on botocore for signing operations.
"""

from .exceptions import SigningError, MissingParameter, InvalidQueryString, InvalidDate
from .sigv4 import (
    SigV4Signer,
    SigningRequest,
    SigningResult,
    SigningOutcome,
    Service,
    Headers,
    sign_request,
    version4,
)

__version__ = "0.1.0"
__all__ = [
    "SigV4Signer",
    "SigningRequest",
    "SigningResult",
    "SigningOutcome",
    "Service",
    "Headers",
    "sign_request",
    "version4",
    "SigningError",
    "MissingParameter",
    "InvalidQueryString",
    "InvalidDate",
]
