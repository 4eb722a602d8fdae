#!/usr/bin/env python3
"""
Run the WorkSync MCP server in STDIO mode for desktop MCP clients
Uses ADO_* credentials from the environment or a .env file
"""
import os
import sys

# Add the project directory to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from worksync.server import main

if __name__ == "__main__":
    os.environ["MCP_TRANSPORT"] = "stdio"
    main()
