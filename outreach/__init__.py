"""Scheduled discovery with an idempotent, durable action ledger."""
