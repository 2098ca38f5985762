"""Storage backends for credential configurations."""
