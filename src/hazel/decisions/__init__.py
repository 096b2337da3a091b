"""Decision records, their embedded control block and reference archives."""
