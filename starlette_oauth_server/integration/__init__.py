"""Translation between Starlette and the protocol-neutral request/response."""
