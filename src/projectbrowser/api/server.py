from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from projectbrowser.api.routers import installer, projects
from projectbrowser.config.settings import config
from projectbrowser.version import get_version

app = FastAPI(
    title="Project Browser API",
    description="Browse a project catalog and install projects into the site.",
    version=get_version(),
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects.router)
app.include_router(installer.router)
