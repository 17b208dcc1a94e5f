"""Adapters binding the core to concrete event logs and terminal output."""
