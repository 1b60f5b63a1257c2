import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lesson_tutor.api_models import ApiResponse
from lesson_tutor.config import API_RESPONSES, CORS_ORIGINS
from lesson_tutor.dependencies import build_components
from lesson_tutor.routers import chat

log = logging.getLogger("lesson_tutor")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own components before startup.
    if getattr(app.state, "components", None) is None:
        app.state.components = build_components()
    try:
        yield
    finally:
        await app.state.components.aclose()
        app.state.components = None


app = FastAPI(
    title="Lesson Tutor API",
    description="Conversational tutor that plans lessons and streams answers.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- CORS Configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Mount Routers ---
app.include_router(chat.router)


@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Welcome to the Lesson Tutor API!"}


# Global exception handlers return the {success, error} envelope
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = API_RESPONSES["NOT_FOUND"] if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content=ApiResponse(success=False, error=message).to_content())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    log.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content=ApiResponse(success=False, error="Invalid request body").to_content())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled exception on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content=ApiResponse(success=False, error=API_RESPONSES["INTERNAL_ERROR"]).to_content(),
    )

# To run the API: uvicorn lesson_tutor.api:app --reload
