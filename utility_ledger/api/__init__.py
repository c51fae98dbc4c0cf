"""HTTP API for the operator-facing layer."""
