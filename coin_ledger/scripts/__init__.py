"""One-shot maintenance commands."""
