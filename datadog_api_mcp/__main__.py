from datadog_api_mcp.cli import main

main()
