"""Backend adapters for the local engine, the cloud service and the embedding service."""
