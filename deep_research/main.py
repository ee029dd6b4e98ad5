from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deep_research.api.routes import config, research
from deep_research.config import settings
from deep_research.services.config_store import ConfigStore
from deep_research.services.report_store import ReportStore
from deep_research.services.run_manager import RunManager


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if not hasattr(app.state, "report_store"):
        app.state.report_store = ReportStore()
    if not hasattr(app.state, "config_store"):
        app.state.config_store = ConfigStore()
    if not hasattr(app.state, "run_manager"):
        app.state.run_manager = RunManager(app.state.report_store, app.state.config_store)
    yield
    # Shutdown
    await app.state.run_manager.shutdown()


app = FastAPI(
    title="Deep Research",
    description="Multi-agent deep research over web search and an OpenAI-compatible model",
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
app.include_router(config.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "deep-research"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("deep_research.main:app", host="0.0.0.0", port=8000)
