"""Crate to Debian translation: version relations, stanzas and build order."""
