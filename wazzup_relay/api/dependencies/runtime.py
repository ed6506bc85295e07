"""
Access to the process's RelayRuntime from route handlers.
"""
from fastapi import Request

from wazzup_relay.runtime import RelayRuntime


def get_runtime(request: Request) -> RelayRuntime:
    """RelayRuntime created by the app lifespan"""
    return request.app.state.runtime
