import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from jumpstudio.ai.pipeline.contracts import GenerationRequest
from jumpstudio.api.deps import get_artifacts_repo, get_job_runner, get_quota_gate
from jumpstudio.api.models import GenerationArtifactResponse
from jumpstudio.api.msgspec_utils import encode_sse_event
from jumpstudio.core.security import get_requester
from jumpstudio.jobs.models import Requester
from jumpstudio.jobs.runner import EventChannel, JobRunner
from jumpstudio.services.generations import start_generation
from jumpstudio.services.quota_gate import QuotaGate
from jumpstudio.storage.artifacts_repo import ArtifactsRepository

router = APIRouter()
logger = logging.getLogger("jumpstudio.api.routes.generations")


async def _sse_stream(channel: EventChannel) -> AsyncIterator[bytes]:
  # Leaving this generator early (client gone) closes the channel; the job keeps running.
  async for event in channel.open():
    yield encode_sse_event(event)


@router.post("", response_class=StreamingResponse, responses={200: {"content": {"text/event-stream": {}}}})
async def create_generation(  # noqa: B008
  request: GenerationRequest,
  requester: Requester = Depends(get_requester),  # noqa: B008
  gate: QuotaGate = Depends(get_quota_gate),  # noqa: B008
  runner: JobRunner = Depends(get_job_runner),  # noqa: B008
) -> StreamingResponse:
  """Start a Jump generation and stream one event per stage."""
  job, channel = await start_generation(request, requester, gate=gate, runner=runner)
  headers = {"X-Job-Id": job.job_id, "Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
  return StreamingResponse(_sse_stream(channel), media_type="text/event-stream", headers=headers)


@router.get("/{job_id}", response_model=GenerationArtifactResponse)
async def get_generation(  # noqa: B008
  job_id: str,
  requester: Requester = Depends(get_requester),  # noqa: B008
  repo: ArtifactsRepository = Depends(get_artifacts_repo),  # noqa: B008
) -> GenerationArtifactResponse:
  """Fetch the persisted artifact for a job, including partial results."""
  record = await repo.get_artifact(job_id)
  # Signed-in users only see their own jobs; a foreign id looks the same as a missing one.
  if record is None or (requester.kind == "user" and record.subject != requester.subject):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")
  return GenerationArtifactResponse.from_record(record)
