"""Shared helpers: distance maths, caching, debouncing and date handling."""
