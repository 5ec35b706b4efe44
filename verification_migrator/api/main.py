"""FastAPI application entry point."""

from fastapi import FastAPI

from .. import __version__
from .routes import migrations


def create_app() -> FastAPI:
    """Build the API application."""
    app = FastAPI(
        title="Contract Verification Migrator API",
        description="Copy verified contract sources between block explorers",
        version=__version__,
    )

    app.include_router(migrations.router, prefix="/api/migrations", tags=["migrations"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
