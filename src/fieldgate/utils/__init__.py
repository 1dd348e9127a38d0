"""FieldGate utilities."""
