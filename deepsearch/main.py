from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deepsearch.api.routes import research
from deepsearch.config import settings
from deepsearch.models.schemas import HealthResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    yield
    # Shutdown


app = FastAPI(
    title="deepsearch",
    description="Autonomous research loop: search, read, reflect and answer",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(research.router)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        service="deepsearch",
        missing_credentials=settings.missing_credentials(),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("deepsearch.main:app", host="0.0.0.0", port=8000)
