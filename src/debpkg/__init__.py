"""Debian-side model.

- constraint.py: dependency relations with series-embedding package names
- naming.py: package naming rules for Rust crates
- stanza.py / control.py: control paragraphs and their serialization
- copyright.py: DEP-5 copyright skeletons
"""
