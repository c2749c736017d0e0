"""
Token Launchpad Package Initialization

This package provides a token launchpad built on the Model Context Protocol (MCP).
Tokens are sold through bonding curves until they raise enough funds to graduate,
after which they trade against constant-product AMM pools.

The package includes:
- Bonding curve pricing (linear, sigmoid and steep curves)
- Bonding-curve markets with fees, refunds, promo budgets and graduation
- Constant-product pools, a pair factory and a multi-hop router
- Launch configuration loading and a launch registry
- Rate limiting and custom error handling
- MCP server implementation for easy integration
"""
