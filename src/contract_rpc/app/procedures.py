"""
Procedure builders for the application contract.

``protected_procedure`` is ``public_procedure`` with the authentication
middleware appended; there is no other difference between the two.
"""

from contract_rpc.app.contracts import app_contract
from contract_rpc.middleware import auth_middleware
from contract_rpc.procedure import implement

public_procedure = implement(app_contract)
protected_procedure = public_procedure.use(auth_middleware)
