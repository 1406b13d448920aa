"""
HTTP API for projects and pages.

Run with:
    uvicorn folioscan.server:create_app --factory --port 8787
or:
    folioscan serve
"""

import base64
import binascii
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import ScanConfig
from .errors import InvalidTransitionError, NotFoundError, UnauthorizedError
from .models import Page, Project, ProjectStatus
from .pipeline import ScanPipeline


MAX_UPLOAD_BYTES = 25 * 1024 * 1024


class CreateProjectRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""


class UploadPageRequest(BaseModel):
    filename: str
    imageData: str  # Base64, optionally a data URL
    mimeType: str = "image/jpeg"


class PageOrder(BaseModel):
    pageId: int
    sortOrder: int


class UpdateOrderRequest(BaseModel):
    pageOrders: list[PageOrder]


class UpdateStatusRequest(BaseModel):
    status: ProjectStatus


def page_json(page: Page) -> dict:
    return {
        "id": page.id,
        "projectId": page.project_id,
        "filename": page.filename,
        "status": page.status.value,
        "extractedText": page.extracted_text,
        "detectedPageNumber": page.page_label,
        "sortKey": page.sort_key,
        "sortOrder": page.sort_position,
        "placementUncertain": page.placement_uncertain,
        "errorMessage": page.error_message,
        "confidence": page.confidence,
        "formatting": [
            {"type": b.type, "level": b.level, "content": b.content, "bold": b.bold, "italic": b.italic}
            for b in page.formatting
        ],
    }


def project_json(project: Project) -> dict:
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "status": project.status.value,
        "totalPages": project.total_pages,
        "processedPages": project.processed_pages,
        "ordered": project.ordered,
    }


def decode_image(image_data: str) -> bytes:
    """Decode a base64 payload, accepting data URLs."""
    payload = image_data.split(",", 1)[1] if image_data.startswith("data:") else image_data
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid image data: {e}") from e

    if not data:
        raise HTTPException(status_code=400, detail="Empty image data")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Image too large")
    return data


def create_app(pipeline: ScanPipeline | None = None) -> FastAPI:
    """Build the API around a pipeline (default: configured from the environment)."""
    if pipeline is None:
        pipeline = ScanPipeline(ScanConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await pipeline.aclose()

    app = FastAPI(title="folioscan", lifespan=lifespan)
    app.state.pipeline = pipeline

    # CORS for local dev
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(UnauthorizedError)
    async def unauthorized(request: Request, exc: UnauthorizedError):
        return JSONResponse(status_code=403, content={"detail": exc.message})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return JSONResponse(status_code=409, content={"detail": exc.message})

    @app.exception_handler(ValueError)
    async def invalid_value(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "llm_url": pipeline.config.llm_api_url}

    @app.post("/projects")
    async def create_project(request: CreateProjectRequest, user_id: int = Header(1, alias="X-User-Id")):
        project = pipeline.create_project(user_id, request.title, request.description)
        return project_json(project)

    @app.get("/projects")
    async def list_projects(user_id: int = Header(1, alias="X-User-Id")):
        return {"projects": [project_json(p) for p in pipeline.list_projects(user_id)]}

    @app.get("/projects/{project_id}")
    async def get_project(project_id: int, user_id: int = Header(1, alias="X-User-Id")):
        project, pages = pipeline.get_project(project_id, user_id)
        return {
            "project": project_json(project),
            "pages": [page_json(p) for p in pages],
            "statusCounts": pipeline.status_counts(project_id, user_id),
        }

    @app.put("/projects/{project_id}/status")
    async def update_status(project_id: int, request: UpdateStatusRequest, user_id: int = Header(1, alias="X-User-Id")):
        project = pipeline.update_project_status(project_id, request.status, user_id)
        return {"success": True, "project": project_json(project)}

    @app.delete("/projects/{project_id}")
    async def delete_project(project_id: int, user_id: int = Header(1, alias="X-User-Id")):
        pipeline.delete_project(project_id, user_id)
        return {"success": True}

    @app.post("/projects/{project_id}/pages")
    async def upload_page(project_id: int, request: UploadPageRequest, user_id: int = Header(1, alias="X-User-Id")):
        if not request.mimeType.startswith("image/"):
            raise HTTPException(status_code=400, detail=f"Not an image: {request.mimeType}")
        data = decode_image(request.imageData)
        page = pipeline.save_upload(project_id, request.filename, data, user_id)
        return page_json(page)

    @app.post("/pages/{page_id}/process")
    async def process_page(page_id: int, user_id: int = Header(1, alias="X-User-Id")):
        """Process a pending page or retry a failed one."""
        outcome = await pipeline.process_page(page_id, user_id)
        return {
            "success": outcome.success,
            "pageNumber": outcome.page.page_label if outcome.page else None,
            "error": outcome.error,
            "attempts": outcome.attempts,
        }

    @app.post("/projects/{project_id}/process-pending")
    async def process_pending(project_id: int, user_id: int = Header(1, alias="X-User-Id")):
        report = await pipeline.process_pending(project_id, user_id)
        return _report_json(report)

    @app.post("/projects/{project_id}/retry-failed")
    async def retry_failed(project_id: int, user_id: int = Header(1, alias="X-User-Id")):
        report = await pipeline.retry_failed(project_id, user_id)
        return _report_json(report)

    @app.post("/projects/{project_id}/reorder")
    async def reorder(project_id: int, user_id: int = Header(1, alias="X-User-Id")):
        pages = pipeline.reorder(project_id, user_id)
        return {"success": True, "pages": [page_json(p) for p in pages]}

    @app.put("/projects/{project_id}/order")
    async def update_order(project_id: int, request: UpdateOrderRequest, user_id: int = Header(1, alias="X-User-Id")):
        orders = {o.pageId: o.sortOrder for o in request.pageOrders}
        pages = pipeline.update_order(project_id, orders, user_id)
        return {"success": True, "pages": [page_json(p) for p in pages]}

    @app.post("/pages/{page_id}/confirm-placement")
    async def confirm_placement(page_id: int, user_id: int = Header(1, alias="X-User-Id")):
        return page_json(pipeline.confirm_placement(page_id, user_id))

    @app.post("/projects/{project_id}/recount")
    async def recount(project_id: int, user_id: int = Header(1, alias="X-User-Id")):
        return project_json(pipeline.recount(project_id, user_id))

    @app.get("/projects/{project_id}/export")
    async def export(project_id: int, user_id: int = Header(1, alias="X-User-Id")):
        """Completed pages in document order."""
        pages = pipeline.export_pages(project_id, user_id)
        return {
            "pages": [
                {
                    "position": p.sort_position,
                    "pageNumber": p.page_label,
                    "text": p.extracted_text,
                    "placementUncertain": p.placement_uncertain,
                }
                for p in pages
            ]
        }

    return app


def _report_json(report) -> dict:
    return {
        "success": True,
        "retriedCount": len(report.results),
        "successCount": report.success_count,
        "cancelled": report.cancelled,
        "results": [
            {"pageId": r.page_id, "success": r.success, "error": r.error, "skipped": r.skipped}
            for r in report.results
        ],
    }
