# /orderbot/routes/interactions.py

import json
import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from orderbot.models.api import Interaction
from orderbot.services.interaction_service import InteractionState, interaction_service
from orderbot.utils.dependencies import verify_discord_signature

# Discord's interactions endpoint. The JSON returned here is the platform
# acknowledgment; the rest of the work runs as a background task after the
# response has been sent, so the acknowledgment never waits on the ledger.

router = APIRouter(
    tags=["Interactions"]
)

log = structlog.get_logger(__name__)


@router.post("/interactions")
async def handle_interaction(
    background_tasks: BackgroundTasks,
    verified_body: bytes = Depends(verify_discord_signature),
):
    """Acknowledges a Discord interaction and schedules its resolution."""
    try:
        interaction = Interaction.model_validate(json.loads(verified_body.decode()))
    except (ValueError, ValidationError) as e:
        log.error("Malformed interaction payload.", error=str(e))
        raise HTTPException(status_code=400, detail="Malformed interaction payload")

    ctx = interaction_service.acknowledge(interaction)
    log.info("Interaction acknowledged.", interaction_id=interaction.id, kind=ctx.kind,
             callback=ctx.callback.type.name)

    if ctx.state == InteractionState.ACKNOWLEDGED:
        background_tasks.add_task(interaction_service.resolve, ctx)

    return JSONResponse(ctx.callback.to_response())
