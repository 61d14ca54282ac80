"""FileSystem MCP server: file, directory, search, diff, archive and watch tools."""

__version__ = "1.0.0"
