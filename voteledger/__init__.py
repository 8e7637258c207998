"""Vote ledger: one vote per voter, live tally, admin-gated winner reveal."""

__version__ = "0.1.0"
