"""
Operator console API

The console UI polls /console/state for the lead on screen (with the
countdown) and posts the operator decision. Missed leads are listed from
Directus, newest attempt first.
"""

from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel
from typing import Optional

from leadhub.services.directus_client import DirectusError
from leadhub.services.lead_presenter import NoVisibleLeadError, LeadActionError

router = APIRouter(tags=["Console"])


def get_pipeline(request: Request):
    """LeadPipeline attached to the app at startup"""
    return request.app.state.pipeline


class AnswerRequest(BaseModel):
    claimed_by: Optional[str] = None


async def _run_action(action):
    try:
        result = await action()
    except NoVisibleLeadError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LeadActionError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if result is None:
        raise HTTPException(status_code=409, detail="Another action is in progress")
    return result


# ==================== PRESENTATION ====================

@router.get("/console/state")
async def console_state(pipeline=Depends(get_pipeline)):
    state = pipeline.presenter.snapshot()
    state["dismissed_count"] = len(pipeline.listener.dismissed)
    return state


@router.post("/console/answer")
async def console_answer(data: Optional[AnswerRequest] = None, pipeline=Depends(get_pipeline)):
    """Claim the lead on screen; returns the contact card prefill"""
    claimed_by = data.claimed_by if data else None
    prefill = await _run_action(lambda: pipeline.presenter.answer(claimed_by=claimed_by))
    return {"success": True, "prefill": prefill}


@router.post("/console/reject")
async def console_reject(pipeline=Depends(get_pipeline)):
    lead = await _run_action(pipeline.presenter.reject)
    return {"success": True, "lead_id": lead.id}


@router.post("/console/spam")
async def console_spam(pipeline=Depends(get_pipeline)):
    lead = await _run_action(pipeline.presenter.mark_spam)
    return {"success": True, "lead_id": lead.id}


@router.post("/console/close")
async def console_close(pipeline=Depends(get_pipeline)):
    """Dismiss without writing anything"""
    if not pipeline.presenter.close():
        if pipeline.presenter.busy:
            raise HTTPException(status_code=409, detail="Another action is in progress")
        raise HTTPException(status_code=409, detail="No lead is being presented")
    return {"success": True}


@router.get("/console/notifications")
async def console_notifications(limit: int = 20, pipeline=Depends(get_pipeline)):
    items = pipeline.notifier.recent(min(limit, 50))
    return {"notifications": items, "count": len(items)}


# ==================== MISSED LEADS ====================

@router.get("/leads/missed")
async def list_missed_leads(limit: int = 200, pipeline=Depends(get_pipeline)):
    try:
        leads = await pipeline.store.fetch_missed_leads(limit=min(limit, 1000))
    except DirectusError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {
        "success": True,
        "leads": [lead.model_dump() for lead in leads],
        "count": len(leads),
    }
