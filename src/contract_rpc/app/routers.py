"""
Routers implementing the application contract.
"""

from __future__ import annotations

from contract_rpc.app.contracts import GreetingInput, GreetingOutput
from contract_rpc.app.procedures import protected_procedure, public_procedure
from contract_rpc.context import Context


def _greeting(name: str | None, audience: str) -> GreetingOutput:
    display_name = name if name is not None else "Anonymous"
    return GreetingOutput(text=f"Hello, {display_name} from {audience} greeting procedure!")


@public_procedure.public.greeting.handler
async def public_greeting(ctx: Context, input: GreetingInput) -> GreetingOutput:
    """Greet the caller, signed in or not."""
    return _greeting(input.name, "public")


@protected_procedure.private.greeting.handler
async def private_greeting(ctx: Context, input: GreetingInput) -> GreetingOutput:
    """Greet a signed-in caller."""
    return _greeting(input.name, "private")


public_router = {"greeting": public_greeting}

private_router = {"greeting": private_greeting}

app_router = public_procedure.router(
    {
        "public": public_router,
        "private": private_router,
    }
)
