# vtrack/adapters/web/fastapi.py
from contextlib import asynccontextmanager
from typing import Any, Callable, List

import uuid

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from vtrack.core.exceptions import (
    BatchNotFoundError,
    InvalidBatchError,
    InvalidToolResultError,
    TrackerError,
)
from vtrack.core.interfaces.http_client import HttpClientPort
from vtrack.core.logging_config import request_id_var
from vtrack.core.managers.batch_tracker import BatchTracker
from vtrack.core.models.batch import DEFAULT_PROJECT_ID
from vtrack.core.models.problem import ProblemDetail
from vtrack.core.models.snapshot import BatchSnapshot
from vtrack.core.settings import logger


class SubmitBatchBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_ids: List[str] = Field(default_factory=list)
    project_id: str = DEFAULT_PROJECT_ID


class ToolResultBody(BaseModel):
    result: Any


_ERROR_STATUS = {
    BatchNotFoundError: (404, "Batch Not Found"),
    InvalidBatchError: (422, "Invalid Batch"),
    InvalidToolResultError: (422, "Invalid Tool Result"),
}


# Driver adapter: depends on the core (BatchTracker), the core never imports it.
def create_app(
    tracker_factory: Callable[[HttpClientPort], BatchTracker],
    http_client: HttpClientPort,
) -> FastAPI:
    """Create the FastAPI app.

    Concrete infrastructure (HTTP client, retry policy, observers) is
    assembled by the composition root and passed in through the factory; this
    adapter only deals with HTTP concerns and the tracker's lifecycle.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with http_client as client:
            tracker = tracker_factory(client)
            app.state.tracker = tracker
            try:
                yield
            finally:
                await tracker.shutdown()

    app = FastAPI(title="Variant Job Tracker", lifespan=lifespan)

    def render_problem(problem: ProblemDetail) -> JSONResponse:
        payload = jsonable_encoder(problem.model_dump(exclude_none=True))
        response = JSONResponse(status_code=problem.status, content=payload)
        if problem.additional and problem.additional.requestId:
            response.headers["X-Request-ID"] = problem.additional.requestId
        return response

    # Assigns a per-request id (header override) and exposes it to logging
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        incoming = request.headers.get("x-request-id")
        rid = incoming or uuid.uuid4().hex[:12]
        token = request_id_var.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(request: Request, exc: TrackerError):
        status, title = _ERROR_STATUS.get(type(exc), (500, "Tracker Error"))
        if status >= 500:
            logger.error(f"[api] tracker error path={request.url.path} error={exc.message}")
        problem = ProblemDetail(
            title=title,
            status=status,
            detail=exc.message,
            instance=str(request.url),
        ).with_request_id(request_id_var.get())
        return render_problem(problem)

    def tracker_of(request: Request) -> BatchTracker:
        return request.app.state.tracker

    @app.get("/health")
    async def health(request: Request):
        return {"status": "ok", "batches": len(tracker_of(request).batch_ids)}

    @app.post(
        "/batches",
        status_code=201,
        response_model=BatchSnapshot,
        response_model_by_alias=True,
    )
    async def submit_batch(body: SubmitBatchBody, request: Request):
        return await tracker_of(request).submit_batch(body.job_ids, body.project_id)

    @app.post(
        "/batches/tool-result",
        status_code=201,
        response_model=BatchSnapshot,
        response_model_by_alias=True,
    )
    async def submit_tool_result(body: ToolResultBody, request: Request):
        return await tracker_of(request).submit_tool_result(body.result)

    @app.get(
        "/batches/{batch_id}",
        response_model=BatchSnapshot,
        response_model_by_alias=True,
    )
    async def get_batch(batch_id: str, request: Request):
        return tracker_of(request).snapshot(batch_id)

    @app.delete("/batches/{batch_id}", status_code=204)
    async def discard_batch(batch_id: str, request: Request):
        await tracker_of(request).cancel(batch_id)
        return Response(status_code=204)

    return app
