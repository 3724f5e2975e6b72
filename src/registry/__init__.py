"""Crate metadata sources: in-memory and the crates.io sparse index."""
