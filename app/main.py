from fastapi import FastAPI

from app.api.v1.router import router as v1_router
from app.core.errors import register_error_handlers
from app.core.log_config import setup_logging
from app.core.telemetry import setup_telemetry

setup_logging()

app = FastAPI(title="Market API", version="0.1.0")

register_error_handlers(app)
setup_telemetry(app)
app.include_router(v1_router)
