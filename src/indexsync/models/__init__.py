"""Value models: schema, mapping descriptors and indexing operations."""
