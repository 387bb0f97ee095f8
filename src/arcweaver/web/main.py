# src/arcweaver/web/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from arcweaver import __version__
from arcweaver.core.logging import init_logging
from arcweaver.web.routes import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_logging()
    yield


# Create the FastAPI application
app = FastAPI(
    title="Arcweaver",
    description="Narrative progression engine for iterative AI-assisted novel generation",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
