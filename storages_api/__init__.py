"""Named filesystem storages with a durable search index."""
