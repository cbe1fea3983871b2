"""
Example application built on contract RPC.

The contract module is the piece shared with clients; the procedures and
routers modules are server-only.
"""
