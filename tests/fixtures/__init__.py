"""Test fixtures and utilities package."""
