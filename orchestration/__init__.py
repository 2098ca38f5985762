"""World generation orchestration."""
