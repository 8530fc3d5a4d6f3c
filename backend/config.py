import os

# Comma-separated origins allowed to call the API (the viewer dev server)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "CITYSCENE_CORS_ORIGINS",
        "http://localhost:5174,http://127.0.0.1:5174",
    ).split(",")
    if origin.strip()
]

# Jobs older than this many finished loads are forgotten
MAX_FINISHED_JOBS = int(os.environ.get("CITYSCENE_MAX_FINISHED_JOBS", "50"))
