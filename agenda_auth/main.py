from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agenda_auth.api.routers import auth as auth_router
from agenda_auth.api.routers import users as users_router
from agenda_auth.shared.config import get_settings
from agenda_auth.shared.logging import configure_logging


configure_logging()

app = FastAPI(title="Agenda Auth API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_allow_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router)
app.include_router(users_router.router)


@app.get("/health")
def health():
    return {"ok": True}
