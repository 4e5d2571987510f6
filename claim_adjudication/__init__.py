"""
Claim Adjudication Core.

Fraud risk scoring, claim lifecycle state machine and read-through caching
for insurance claims.
"""

__version__ = "1.0.0"
