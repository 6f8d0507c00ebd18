"""Claims module."""

from .submit import submit_proof, submit_claim, get_claim_counts
from .review import approve_claim, reject_claim, get_audit_queue

__all__ = [
    "submit_proof",
    "submit_claim",
    "get_claim_counts",
    "approve_claim",
    "reject_claim",
    "get_audit_queue",
]
