"""Persistence for mrsync notification state."""
