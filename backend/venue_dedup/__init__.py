"""Venue duplicate detection and merge engine."""
