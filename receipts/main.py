from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from receipts.api.billing import router as billing_router
from receipts.api.contacts import router as contacts_router
from receipts.api.documents import router as documents_router
from receipts.api.public import router as public_router
from receipts.api.stacks import public_router as public_stacks_router
from receipts.api.stacks import router as stacks_router
from receipts.api.templates import router as templates_router
from receipts.api.workspaces import router as workspaces_router
from receipts.errors import register_error_handlers
from receipts.logging import configure_logging

app = FastAPI(title="Receipt API")

configure_logging()
register_error_handlers(app)


def _include_api_router(router, dependencies=None):
    app.include_router(router, dependencies=dependencies)
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(documents_router)
_include_api_router(public_stacks_router)
_include_api_router(public_router)
_include_api_router(workspaces_router)
_include_api_router(contacts_router)
_include_api_router(templates_router)
_include_api_router(stacks_router)
_include_api_router(billing_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/metrics")
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
