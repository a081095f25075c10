"""Dataset reconciliation: desired-state building, apply, and orchestration."""
