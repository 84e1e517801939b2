from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from evdesk.tickets.workflow import WorkflowFacade


async def get_workflow(request: Request) -> WorkflowFacade:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(status_code=503, detail="Ticket workflow is not configured")
    return workflow


WorkflowDep = Annotated[WorkflowFacade, Depends(get_workflow)]
