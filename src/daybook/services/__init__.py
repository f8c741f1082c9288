"""Services: CLI and MCP server entry points."""
