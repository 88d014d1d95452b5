import logging
from typing import Dict, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from openai import OpenAIError

from .config import (
    ANALYZE_COMMANDS,
    IMAGE_PROVIDER,
    LOG_LEVEL,
    OPENAI_API_KEY,
    OUTPUT_DIR,
    STATIC_URL_PATH,
    ensure_output_dir,
)
from .schemas import (
    BatchVariationsRequest,
    CancelResponse,
    EditCommand,
    EditingSession,
    EditLogoRequest,
    EditOperation,
    ExecuteCommandRequest,
    GenerationProgress,
    GenerationRequest,
    GenerationResult,
    ParseCommandRequest,
    SelectVariationRequest,
    SessionEditRequest,
    SessionSummary,
    SessionVariationsRequest,
    StartSessionRequest,
    SuggestionsRequest,
    TypedVariationsRequest,
    VariationResult,
    VariationsRequest,
    VariationType,
)
from .services.command_analyzer import OpenAICommandAnalyzer
from .services.command_parser import CommandParser, get_command_suggestions
from .services.editing_session import (
    edit_count,
    execute_edit,
    generate_editing_variations,
    latest_operation,
    select_variation,
    start_session,
)
from .services.image_gateway import FluxKontextGateway, OpenAIImageGateway
from .services.prompt_compiler import PromptCompiler
from .services.variation_service import VariationService, variation_descriptions, variation_options
from .services.workflow import WorkflowCoordinator

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)

# Ensure output directory exists before mounting static files.
ensure_output_dir()

app = FastAPI(title="Logo Studio API", version="1.0.0")

# Basic CORS to allow calls from a separate front end.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Serve locally generated logo files so the front end can fetch them by URL.
app.mount(STATIC_URL_PATH, StaticFiles(directory=OUTPUT_DIR), name="logos")


def build_coordinator() -> WorkflowCoordinator:
    gateway = OpenAIImageGateway() if IMAGE_PROVIDER == "openai" else FluxKontextGateway()
    logger.info(f"Using {IMAGE_PROVIDER} image provider")
    return WorkflowCoordinator(gateway=gateway, compiler=PromptCompiler())


def build_command_parser() -> CommandParser:
    analyzer = OpenAICommandAnalyzer() if ANALYZE_COMMANDS and OPENAI_API_KEY else None
    return CommandParser(compiler=PromptCompiler(), analyzer=analyzer)


coordinator = build_coordinator()
command_parser = build_command_parser()

# Editing sessions live in process memory and are lost on restart.
sessions: Dict[str, EditingSession] = {}


def strip_image_data(result: GenerationResult, include_image_data: bool = False) -> GenerationResult:
    """Drop inline base64 payloads unless the caller asked for them."""
    if include_image_data:
        return result
    logos = [logo.model_copy(update={"image_data": None}) for logo in result.logos]
    return result.model_copy(update={"logos": logos})


def strip_variation_data(result: VariationResult, include_image_data: bool = False) -> VariationResult:
    if include_image_data:
        return result
    variations = [logo.model_copy(update={"image_data": None}) for logo in result.variations]
    return result.model_copy(update={"variations": variations})


@app.post("/generate", response_model=GenerationResult)
async def generate_logos(payload: GenerationRequest, include_image_data: bool = False) -> GenerationResult:
    try:
        result = await coordinator.generate_logos(payload)
    except OpenAIError as exc:
        raise HTTPException(status_code=502, detail=f"OpenAI error: {exc}") from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during logo generation") from exc

    logger.info(
        f"Generation for {payload.business.company_name!r}: success={result.success} "
        f"generated={result.total_generated} failed={result.failed_count}"
    )
    return strip_image_data(result, include_image_data)


@app.post("/variations", response_model=GenerationResult)
async def generate_variations(payload: VariationsRequest) -> GenerationResult:
    try:
        result = await coordinator.generate_variations(payload.logo, payload.count)
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during variation generation") from exc
    return strip_image_data(result, payload.include_image_data)


@app.post("/edit", response_model=GenerationResult)
async def edit_logo(payload: EditLogoRequest) -> GenerationResult:
    try:
        result = await coordinator.edit_logo(payload.logo, payload.instructions)
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during logo editing") from exc
    return strip_image_data(result, payload.include_image_data)


@app.post("/commands/parse", response_model=EditCommand)
async def parse_command(payload: ParseCommandRequest) -> EditCommand:
    return await command_parser.parse(payload.text, payload.logo, payload.context)


@app.post("/commands/execute", response_model=GenerationResult)
async def execute_command(payload: ExecuteCommandRequest) -> GenerationResult:
    try:
        result = await coordinator.execute_command(payload.logo, payload.command)
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during logo editing") from exc
    return strip_image_data(result, payload.include_image_data)


@app.post("/commands/suggestions", response_model=List[str])
async def command_suggestions(payload: SuggestionsRequest) -> List[str]:
    return get_command_suggestions(payload.logo)


@app.get("/progress/{workflow_id}", response_model=GenerationProgress)
async def get_progress(workflow_id: str) -> GenerationProgress:
    progress = coordinator.get_generation_progress(workflow_id)
    if progress is None:
        raise HTTPException(status_code=404, detail=f"No active workflow {workflow_id}")
    return progress


@app.delete("/progress/{workflow_id}", response_model=CancelResponse)
async def cancel_workflow(workflow_id: str) -> CancelResponse:
    return CancelResponse(workflow_id=workflow_id, cancelled=coordinator.cancel_generation(workflow_id))


@app.post("/variations/typed", response_model=VariationResult)
async def generate_typed_variations(payload: TypedVariationsRequest) -> VariationResult:
    try:
        result = await VariationService(coordinator).generate_variations(
            payload.logo, payload.variation_type, payload.count, payload.custom_parameters
        )
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during variation generation") from exc
    return strip_variation_data(result, payload.include_image_data)


@app.post("/variations/batch", response_model=List[VariationResult])
async def generate_batch_variations(payload: BatchVariationsRequest) -> List[VariationResult]:
    try:
        results = await VariationService(coordinator).generate_batch_variations(
            payload.logo, payload.types, payload.count_per_type
        )
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during variation generation") from exc
    return [strip_variation_data(result, payload.include_image_data) for result in results]


@app.get("/variations/options", response_model=Dict[str, List[str]])
async def get_variation_options() -> Dict[str, List[str]]:
    return variation_options()


@app.get("/variations/descriptions/{variation_type}", response_model=Dict[str, str])
async def get_variation_descriptions(variation_type: VariationType) -> Dict[str, str]:
    return variation_descriptions(variation_type)


# -------------------
# Editing sessions
# -------------------

def get_session(session_id: str) -> EditingSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No editing session {session_id}")
    return session


def summarize(session: EditingSession) -> SessionSummary:
    return SessionSummary(
        session=session,
        edit_count=edit_count(session),
        latest_operation=latest_operation(session),
    )


@app.post("/sessions", response_model=SessionSummary)
async def create_session(payload: StartSessionRequest) -> SessionSummary:
    session = start_session(payload.logo)
    sessions[session.id] = session
    logger.info(f"Started editing session {session.id} for logo {payload.logo.id}")
    return summarize(session)


@app.get("/sessions/{session_id}", response_model=SessionSummary)
async def read_session(session_id: str) -> SessionSummary:
    return summarize(get_session(session_id))


@app.post("/sessions/{session_id}/edits", response_model=EditOperation)
async def edit_in_session(session_id: str, payload: SessionEditRequest) -> EditOperation:
    session = get_session(session_id)
    command = await command_parser.parse(payload.text, session.current_logo, payload.context)
    try:
        return await execute_edit(session, command, coordinator)
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during logo editing") from exc


@app.post("/sessions/{session_id}/variations", response_model=List[EditOperation])
async def session_variations(session_id: str, payload: SessionVariationsRequest) -> List[EditOperation]:
    session = get_session(session_id)
    command = await command_parser.parse(payload.text, session.current_logo, payload.context)
    try:
        return await generate_editing_variations(session, command, coordinator, payload.count)
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Unexpected error during variation generation") from exc


@app.post("/sessions/{session_id}/select", response_model=SessionSummary)
async def select_session_variation(session_id: str, payload: SelectVariationRequest) -> SessionSummary:
    session = get_session(session_id)
    try:
        select_variation(session, payload.operation)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return summarize(session)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("logo_studio.main:app", host="0.0.0.0", port=8000, reload=True)
