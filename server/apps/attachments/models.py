"""Models module for attachments app (no models of its own)."""
