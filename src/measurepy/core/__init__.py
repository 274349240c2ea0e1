"""Interception-and-recording pipeline."""
