"""
Contract RPC - schema-validated procedures shared by server and client.

This package lets a single contract (input and output schemas per procedure)
be implemented once on a server, composed into routers with middleware,
dispatched over HTTP under a mount prefix, and consumed by a typed client
with query-cache integration.
"""

from contract_rpc.client import RPCLink, create_client
from contract_rpc.contract import (
    ContractProcedure,
    ContractRouter,
    define_contract,
    procedure_contract,
)
from contract_rpc.dispatcher import RPCHandler
from contract_rpc.errors import ErrorKind, RPCError
from contract_rpc.procedure import Procedure, implement
from contract_rpc.query import create_query_utils
from contract_rpc.router import Router, build_router

__version__ = "0.1.0"

__all__ = [
    "ContractProcedure",
    "ContractRouter",
    "ErrorKind",
    "Procedure",
    "RPCError",
    "RPCHandler",
    "RPCLink",
    "Router",
    "build_router",
    "create_client",
    "create_query_utils",
    "define_contract",
    "implement",
    "procedure_contract",
]
