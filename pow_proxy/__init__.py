"""
pow-proxy: local JSON-RPC relay between Ethereum clients and a remote provider.
"""

__version__ = "0.1.0"
