"""Utility functions and helpers for the vastkmm application."""
