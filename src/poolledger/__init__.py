"""poolledger: a pooled-investment ledger with pro-rata dividend distribution."""

__version__ = "0.1.0"
