"""Confluency client core - Services."""
