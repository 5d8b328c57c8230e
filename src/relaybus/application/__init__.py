"""Application layer – publisher, outbox processor and event bus."""
