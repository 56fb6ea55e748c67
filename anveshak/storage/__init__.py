"""Durable state: key-value records, chat sessions and memories."""
