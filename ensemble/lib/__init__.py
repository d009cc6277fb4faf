"""
Shared building blocks: config, logging, errors, retry, persisted settings,
URL helpers, authentication strategies and the WebSocket transport.
"""
