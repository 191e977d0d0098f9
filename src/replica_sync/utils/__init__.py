"""Utility helpers for replica-sync."""
