"""Process-level wiring such as logging."""
