from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request

from captions.diff import diff_words
from captions.srt import parse_transcript, serialize_transcript
from common.config import CorrectionSettings
from common.errors import CaptionError
from common.schemas import (
    DiffRequest,
    DiffResponse,
    ParseRequest,
    ParseResponse,
    SerializeRequest,
    SerializeResponse,
    SuggestRequest,
    SuggestResponse,
)
from correction_service.llm_client import ChatClient
from correction_service.pipeline import SuggestionPipeline

logger = logging.getLogger(__name__)

settings = CorrectionSettings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with ChatClient(settings) as client:
        app.state.pipeline = SuggestionPipeline(client, settings)
        yield


app = FastAPI(title="Caption Correction Service", lifespan=lifespan)


def get_pipeline(request: Request) -> SuggestionPipeline:
    return request.app.state.pipeline


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/parse", response_model=ParseResponse)
async def parse(req: ParseRequest):
    try:
        segments = parse_transcript(req.content)
    except CaptionError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return ParseResponse(segments=segments)


@app.post("/serialize", response_model=SerializeResponse)
async def serialize(req: SerializeRequest):
    try:
        content = serialize_transcript(req.cues)
    except CaptionError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return SerializeResponse(content=content)


@app.post("/diff", response_model=DiffResponse)
async def diff(req: DiffRequest):
    return DiffResponse(tokens=diff_words(req.original, req.edited))


@app.post("/suggest", response_model=SuggestResponse)
async def suggest(req: SuggestRequest, pipeline: SuggestionPipeline = Depends(get_pipeline)):
    result = await pipeline.run(req.segments, title=req.title, language=req.language)
    return SuggestResponse(
        state=result.state,
        suggestions=list(result.suggestions.values()),
        failures=result.failures,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
