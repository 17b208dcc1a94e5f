"""Core domain package for eventwatch.

Core contains the watermark, classification and polling logic without any
event-log or terminal-specific code, keeping the monitoring loop portable
across sources and renderers.
"""
