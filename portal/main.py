from prometheus_fastapi_instrumentator import Instrumentator

from portal.core.config import settings
from portal.core.logging import setup_logging
from . import app as portal_app

setup_logging()
app = portal_app
Instrumentator().instrument(app).expose(app)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("portal.main:app", host=settings.HOST, port=settings.PORT, log_level="info")
