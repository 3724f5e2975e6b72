"""Crate-side model.

- semver_req.py: Cargo version requirement grammar and matching
- models.py: dependency and crate metadata values
- features.py: feature graph, closures and feature grouping
- manifest.py: metadata from Cargo.toml and registry index records
"""
