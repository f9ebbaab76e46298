"""
Codex Relay MCP layer: stdio transport, envelopes, dispatch.
"""
