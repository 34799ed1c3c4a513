"""Shared models, codecs and errors for the behavioral fraud review engine."""
