"""
Application contract shared by the server and its clients.

Both sides import ``app_contract`` from here unmodified; nothing in it is
generated per request.
"""

from __future__ import annotations

from pydantic import BaseModel

from contract_rpc.contract import define_contract, procedure_contract


class GreetingInput(BaseModel):
    """Input of the greeting procedures."""

    name: str | None = None


class GreetingOutput(BaseModel):
    """Output of the greeting procedures."""

    text: str


greeting_public = {
    "greeting": procedure_contract(
        input=GreetingInput,
        output=GreetingOutput,
        description="Greets anyone",
    ),
}

greeting_private = {
    "greeting": procedure_contract(
        input=GreetingInput,
        output=GreetingOutput,
        description="Greets signed-in users only",
    ),
}

app_contract = define_contract(
    {
        "public": greeting_public,
        "private": greeting_private,
    }
)
