"""FieldGate - event ledger and aggregation engine for field-service dispatch."""

__version__ = "0.1.0"
