"""
FastAPI dependencies for the local agent.

The ComplianceContext is created in the lifespan handler and stored on
app.state; routes receive it (or one of its components) through Depends().
"""

from typing import Annotated

from fastapi import Depends, Request

from compliance_sync.application.context import ComplianceContext


def get_context(request: Request) -> ComplianceContext:
    return request.app.state.context


ContextDep = Annotated[ComplianceContext, Depends(get_context)]
