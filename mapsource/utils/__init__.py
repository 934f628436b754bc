"""Pure helpers for tile math, URLs and XML."""
