"""
LMS Kernel

The workflow and ledger core of the land/tax records platform:
- Role-gated approval workflow for customer and property records
- Tax assessments with derived status and append-only payments
- Conditional (optimistic) writes for every status or amount mutation
- Append-only audit and activity logs, best-effort after commit
"""

__version__ = "0.1.0"
