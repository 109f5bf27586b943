import uvicorn
import time
import logging
from fastapi import FastAPI, Request
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from remediator.api.runs import router as runs_router, RunTracker
from remediator.api.backups import router as backups_router
from remediator.utils.logging_config import setup_logging

# Initialize logging
setup_logging(level=logging.INFO)
logger = logging.getLogger("main")

app = FastAPI(title="Diagnostic Remediation API")
app.state.runs = RunTracker()

# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        client_host = request.client.host if request.client else "unknown"
        logger.info("Incoming: %s %s from %s", request.method, request.url.path, client_host)

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            logger.error("Request failed: %s %s after %.2fms - Error: %s",
                         request.method, request.url.path, process_time, e)
            raise

        process_time = (time.time() - start_time) * 1000
        logger.info("Outgoing: %s %s - Status: %d - Time: %.2fms",
                    request.method, request.url.path, response.status_code, process_time)
        return response

app.add_middleware(LoggingMiddleware)

# ---------------------------------------------------------------------------
# CORS: local dashboards only
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Health endpoint
@app.get("/health")
async def health_check():
    return {"status": "ok"}

# Register routers
app.include_router(runs_router)
app.include_router(backups_router)

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
