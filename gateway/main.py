from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse

from common.config import CorrectionSettings, GatewaySettings
from common.errors import CaptionError
from common.schemas import (
    CreateProjectRequest,
    Project,
    SegmentUpdateRequest,
    SegmentUpdateResponse,
)
from correction_service.llm_client import ChatClient
from correction_service.pipeline import SuggestionPipeline
from gateway.projects import (
    apply_segment_updates,
    apply_suggestions,
    build_project,
    export_project,
)
from gateway.store import InMemoryProjectStore, ProjectStore

logger = logging.getLogger(__name__)

settings = GatewaySettings()
correction_settings = CorrectionSettings()
store = InMemoryProjectStore(max_projects_per_owner=settings.max_projects_per_owner)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with ChatClient(correction_settings) as client:
        app.state.pipeline = SuggestionPipeline(client, correction_settings)
        yield


app = FastAPI(title="Caption Review Gateway", lifespan=lifespan)


def get_pipeline(request: Request) -> SuggestionPipeline:
    return request.app.state.pipeline


def get_store() -> ProjectStore:
    return store


def get_owner(x_owner_id: Optional[str] = Header(default=None)) -> str:
    return x_owner_id or settings.default_owner


async def _load_project(store: ProjectStore, owner: str, project_id: str) -> Project:
    project = await store.get(owner, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Not found")
    return project


async def _suggest(project: Project, pipeline: SuggestionPipeline) -> Project:
    result = await pipeline.run(project.segments, title=project.title, language=project.language)
    if result.failures:
        logger.warning("Project %s: suggestion run degraded (%s)", project.id, "; ".join(result.failures))
    return apply_suggestions(project, result.suggestions)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/projects", response_model=Project, status_code=201)
async def create_project(
    req: CreateProjectRequest,
    owner: str = Depends(get_owner),
    store: ProjectStore = Depends(get_store),
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    try:
        project = build_project(owner, req.content, title=req.title, language=req.language, file_name=req.file_name)
    except CaptionError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if not await store.has_room(owner):
        raise HTTPException(status_code=409, detail=f"Project limit reached for owner {owner}")

    logger.info("Project %s parsed: %d segments", project.id, len(project.segments))
    project = await _suggest(project, pipeline)
    try:
        await store.put(project)
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return project


@app.get("/projects", response_model=list[Project])
async def list_projects(owner: str = Depends(get_owner), store: ProjectStore = Depends(get_store)):
    return await store.list(owner)


@app.get("/projects/{project_id}", response_model=Project)
async def get_project(project_id: str, owner: str = Depends(get_owner), store: ProjectStore = Depends(get_store)):
    project = await _load_project(store, owner, project_id)
    project.segments.sort(key=lambda s: s.index)
    return project


@app.delete("/projects/{project_id}", status_code=204)
async def delete_project(project_id: str, owner: str = Depends(get_owner), store: ProjectStore = Depends(get_store)):
    await _load_project(store, owner, project_id)
    await store.delete(owner, project_id)
    return Response(status_code=204)


@app.post("/projects/{project_id}/process", response_model=Project)
async def process_project(
    project_id: str,
    owner: str = Depends(get_owner),
    store: ProjectStore = Depends(get_store),
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    project = await _suggest(await _load_project(store, owner, project_id), pipeline)
    await store.put(project)
    return project


@app.patch("/projects/{project_id}/segments", response_model=SegmentUpdateResponse)
async def update_segments(
    project_id: str,
    req: SegmentUpdateRequest,
    owner: str = Depends(get_owner),
    store: ProjectStore = Depends(get_store),
):
    updates = [u for u in req.updates if not u.is_empty]
    if not updates:
        raise HTTPException(status_code=400, detail="No valid updates supplied")

    project = await _load_project(store, owner, project_id)
    applied = apply_segment_updates(project, updates)
    if not applied:
        raise HTTPException(status_code=404, detail="No matching segments found for update")
    await store.put(project)
    return SegmentUpdateResponse(segments=applied)


@app.get("/projects/{project_id}/export")
async def export(project_id: str, owner: str = Depends(get_owner), store: ProjectStore = Depends(get_store)):
    project = await _load_project(store, owner, project_id)
    try:
        file_name, content = export_project(project)
    except CaptionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return PlainTextResponse(
        content,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
