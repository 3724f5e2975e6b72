"""Shared helpers: logging, diagnostics and HTTP."""
