# /orderbot/routes/admin.py

from fastapi import APIRouter, Depends, HTTPException

from orderbot.models.api import APIResponse
from orderbot.jobs.cleanup_job import cleanup_job
from orderbot.jobs.pull_and_post_job import pull_and_post_job
from orderbot.services.cache_service import order_cache
from orderbot.utils.dependencies import verify_admin_key
from orderbot.utils.exceptions import OrderBotError

# Operator endpoints to run the sync jobs on demand (for example from a cron
# service when the in-process intervals are disabled) and inspect the cache.

JOBS = {
    pull_and_post_job.name: pull_and_post_job,
    cleanup_job.name: cleanup_job,
}

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_key)]
)


@router.post("/jobs/{job_name}/run", response_model=APIResponse)
async def run_job(job_name: str):
    """Runs a job now unless it is already running."""
    job = JOBS.get(job_name)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Unknown job '{job_name}'")

    try:
        report = await job.trigger()
    except OrderBotError as e:
        raise HTTPException(status_code=502, detail=str(e))

    if report is None:
        return APIResponse(success=False, message=f"Job '{job_name}' is already running")
    return APIResponse(success=True, message=f"Job '{job_name}' finished", data=report.model_dump(mode="json"))


@router.get("/cache", response_model=APIResponse)
async def get_cache():
    """Lists cached orders with their page cursor and message id."""
    orders = [
        {
            "order_id": order.order_id,
            "message_id": order.message_id,
            "page": order.page,
            "items": len(order.items),
        }
        for order in order_cache.orders()
    ]
    return APIResponse(success=True, message="Cache retrieved", data={"orders": orders})
