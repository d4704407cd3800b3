"""Operations ledger for a vehicle repair shop."""

__version__ = "0.1.0"
