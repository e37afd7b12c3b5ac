"""Pydantic data models for ShiftDeck requests, settings, builds and status."""
