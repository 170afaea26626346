"""Harness implementations."""
