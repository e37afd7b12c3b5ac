"""Configuration loading for ShiftDeck."""
