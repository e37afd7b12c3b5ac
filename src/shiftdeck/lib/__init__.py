"""Shared utilities for ShiftDeck: errors and logging."""
