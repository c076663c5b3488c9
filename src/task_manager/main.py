import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from task_manager.config import get_settings
from task_manager.database import close_db, create_engine, init_db
from task_manager.errors import (
    CREATE_FAILED,
    DESCRIPTION_REQUIRED,
    LIST_FAILED,
    ApiError,
    record_error_on_span,
)
from task_manager.middleware import MetricsMiddleware
from task_manager.schemas import TaskCreate, TaskCreated
from task_manager.services.prompts import load_prompt
from task_manager.services.titles import TitleGenerator, create_title_generator
from task_manager.store import TaskStore, TaskStoreError
from task_manager.telemetry import instrument_fastapi, instrument_sqlalchemy, setup_telemetry


settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Initialize OTel SDK BEFORE app creation
setup_telemetry(
    service_name=settings.service_name,
    otlp_endpoint=settings.otlp_endpoint,
    environment=settings.scout_environment,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    engine = create_engine(settings)
    instrument_sqlalchemy(engine)
    if settings.db_create_tables:
        await init_db(engine)

    app.state.store = TaskStore(engine)
    app.state.title_generator = create_title_generator(
        api_key=settings.gemini_api_key,
        model=settings.llm_model,
        prompt=load_prompt(f"title_{settings.title_prompt_version}"),
        timeout=settings.llm_timeout,
    )
    logger.info("Backend running on http://%s:%d", settings.host, settings.port)
    yield
    await close_db(engine)
    logger.info("Database connections closed")


app = FastAPI(title="AI Task Manager", lifespan=lifespan)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
instrument_fastapi(app)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    record_error_on_span(exc)
    logger.warning("Validation error on %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


def get_store(request: Request) -> TaskStore:
    return request.app.state.store


def get_title_generator(request: Request) -> TitleGenerator:
    return request.app.state.title_generator


StoreDep = Annotated[TaskStore, Depends(get_store)]
TitleGeneratorDep = Annotated[TitleGenerator, Depends(get_title_generator)]


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy", "service": settings.service_name}


@app.post("/tasks", status_code=201)
async def create_task(
    store: StoreDep,
    title_generator: TitleGeneratorDep,
    payload: Annotated[TaskCreate | None, Body()] = None,
) -> TaskCreated:
    # A missing body is a missing description
    if payload is None or not payload.description:
        raise ApiError(400, DESCRIPTION_REQUIRED)

    # Generation failures are absorbed here and yield the fallback title
    title = await title_generator.generate_title(payload.description)

    try:
        task_id = await store.insert(title, payload.description, payload.due_date or None)
    except TaskStoreError as exc:
        record_error_on_span(exc)
        logger.exception("Failed to insert task")
        raise ApiError(500, CREATE_FAILED) from None

    return TaskCreated(
        id=task_id,
        title=title,
        description=payload.description,
        due_date=payload.due_date,
    )


@app.get("/tasks")
async def list_tasks(store: StoreDep) -> list[dict[str, Any]]:
    try:
        return await store.list_all()
    except TaskStoreError as exc:
        record_error_on_span(exc)
        logger.exception("Failed to list tasks")
        raise ApiError(500, LIST_FAILED) from None


def run() -> None:
    import uvicorn

    uvicorn.run("task_manager.main:app", host=settings.host, port=settings.port)
