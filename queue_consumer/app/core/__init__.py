"""Shared helpers for the consumer application."""

SERVICE_NAME = "queue-consumer"
