"""Versioned persistence envelopes for layer configurations."""
