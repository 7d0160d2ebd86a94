"""
Client-side order lifecycle engine for the 0x peer-to-peer exchange protocol.
"""
__version__ = "0.1.0"
