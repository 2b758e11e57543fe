"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routers import catalog, query, rules
from src.db.executor import QueryExecutionError

app = FastAPI(
    title="Rule Compiler",
    version="0.1.0",
    description="Filter-rule authoring and compilation for shipment reports",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rules.router, prefix="/rules", tags=["Rules"])
app.include_router(query.router, prefix="/query", tags=["Query"])
app.include_router(catalog.router, tags=["Catalog"])


@app.exception_handler(QueryExecutionError)
async def execution_error_handler(request: Request, exc: QueryExecutionError):
    return JSONResponse(
        status_code=502,
        content={"message": str(exc), "retryable": exc.retryable},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    from src.core.config import get_settings

    uvicorn.run("src.api.main:app", host="0.0.0.0", port=get_settings().api_port)
