from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import config
from backend.routers import load, scene

app = FastAPI(
    title="CityScene API",
    description="Backend API for loading OpenStreetMap data into 3-D scenes",
    version="0.1.0",
)

# ---------------------------------------------------------------------------
# CORS -- allow the viewer dev server
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(load.router)
app.include_router(scene.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "CityScene API"}
