"""Persistence adapters for gig listings."""
