"""
HaloTrack MCP Server - Model Context Protocol server for attribution.

Exposes HaloTrack to MCP clients:
- Tracking tools (record touches, identify visitors, custom events)
- Conversion tools (order and lead ingestion, pipeline status)
- Reporting tools (pipeline by channel, revenue, visitor analytics)
- BigQuery tools (query, schema, cost estimation)

Usage:
    # Via CLI
    halotrack-mcp

    # Via Python
    from halotrack_mcp import server
    server.main()

    # Via an MCP client config (.mcp.json)
    {
        "mcpServers": {
            "halotrack": {
                "command": "halotrack-mcp"
            }
        }
    }
"""

__version__ = "0.1.0"
