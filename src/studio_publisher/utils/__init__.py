"""Utility helpers for Studio Publisher."""
