"""MCP tool server over the rota core."""
