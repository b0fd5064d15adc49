"""Event sources: exported batches and live cluster snapshots."""
