"""Per-crate packaging config: schema and loader."""
