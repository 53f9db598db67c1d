"""AnyCrawl MCP server: scrape, crawl and search tools over MCP transports."""

__version__ = "0.1.0"
