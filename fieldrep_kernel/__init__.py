"""
Field Reporting Kernel

Role-gated approval workflow for sales visit reports and monthly expense
sheets:
- Validated submissions (visit reports, expense sheets)
- Single capability check per operation
- Forward-only state machines with atomic compare-and-swap transitions
- Default totals computed from catalog tariffs
"""

__version__ = "0.1.0"
