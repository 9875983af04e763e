from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import CORS_ORIGINS
from .errors import register_exception_handlers
from .logging_setup import configure_logging
from .routers import sessions, grid_preparations, samples, grid_types, microscope_sessions, blog, health

configure_logging()

app = FastAPI(title="Grid Prep Log API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS != ["*"] else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(sessions.router)
app.include_router(grid_preparations.router)
app.include_router(samples.router)
app.include_router(grid_types.router)
app.include_router(microscope_sessions.router)
app.include_router(blog.router)
app.include_router(health.router)
