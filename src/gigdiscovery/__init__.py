"""Gig discovery: search, filter, sort and page short-term gig listings."""

__version__ = "0.1.0"
