"""Core models shared across the buildspace pipeline."""
