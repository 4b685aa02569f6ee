# middleware.py
import os
from fastapi.middleware.cors import CORSMiddleware


def add_cors_middleware(app):
    origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
