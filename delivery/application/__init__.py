"""Application layer: producer and consumer use-cases."""
