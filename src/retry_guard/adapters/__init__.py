"""Integrations for agent frameworks and message formats."""
