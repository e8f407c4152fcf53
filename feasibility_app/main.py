"""
Biogas Feasibility Calculator - Application Entry Point

FastAPI application exposing the biogas plant feasibility engine:
production, revenue, cost and investment modelling, NPV/IRR/payback
metrics, scenario analysis and report export.
"""
import json
import os
import re
import logging
from datetime import datetime
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from feasibility_app.api.routes import api_router

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("feasibility-calculator")

# ---------------------------------------------------------------------------
# Snake_case → camelCase API response middleware
# ---------------------------------------------------------------------------

_SNAKE_RE = re.compile(r"_([a-z])")


def _to_camel(snake: str) -> str:
    """Convert snake_case string to camelCase."""
    return _SNAKE_RE.sub(lambda m: m.group(1).upper(), snake)


def _convert_keys(obj):
    """Recursively convert all dict keys from snake_case to camelCase
    and serialize datetime objects to ISO 8601 strings."""
    if isinstance(obj, dict):
        return {_to_camel(k): _convert_keys(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_keys(item) for item in obj]
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


class CamelCaseMiddleware(BaseHTTPMiddleware):
    """Middleware that converts JSON API responses from snake_case to camelCase."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if not request.url.path.startswith("/api/"):
            return response

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return response

        body_chunks = []
        async for chunk in response.body_iterator:
            if isinstance(chunk, bytes):
                body_chunks.append(chunk)
            else:
                body_chunks.append(chunk.encode("utf-8"))
        body = b"".join(body_chunks)

        try:
            data = json.loads(body)
            converted = _convert_keys(data)
            new_body = json.dumps(converted, default=str)
            headers = dict(response.headers)
            headers.pop("content-length", None)  # Will be recalculated
            return Response(
                content=new_body,
                status_code=response.status_code,
                headers=headers,
                media_type="application/json",
            )
        except (json.JSONDecodeError, TypeError):
            # Not valid JSON or conversion failed; return original
            return Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=content_type,
            )


app = FastAPI(
    title="Biogas Feasibility Calculator",
    description="Feasibility and return-on-investment analysis for cattle-dung biogas plants",
    version="1.0.0",
)

app.add_middleware(CamelCaseMiddleware)
app.include_router(api_router)


@app.get("/")
async def root():
    return {
        "status": "running",
        "message": "Biogas Feasibility Calculator API is running.",
        "docs": "/docs",
    }


@app.on_event("startup")
async def startup_event():
    logger.info("Biogas Feasibility Calculator starting up...")
    logger.info("Log level: %s", logging.getLevelName(logging.getLogger().level))


def run():
    import uvicorn
    host = os.environ.get("FEASIBILITY_HOST", "0.0.0.0")
    port = int(os.environ.get("FEASIBILITY_PORT", "8000"))
    logger.info("Serving on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
