"""Rule engine, wire models and shared primitives."""
