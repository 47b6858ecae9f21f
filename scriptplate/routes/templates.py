from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException

from ..core.errors import (
    ExecutionError,
    RenderError,
    TemplateError,
    UnknownPlaceholderError,
    UnresolvedPlaceholderError,
)
from ..core.settings import get_settings
from ..schemas.templates import (
    AssembleRequest,
    ExecuteRequest,
    ExecuteResponse,
    PlaceholdersRequest,
    PlaceholdersResponse,
    RenderRequest,
    RenderResponse,
)
from ..services import Assembler, ExecutableReference, Template, apply_values, get_backend

router = APIRouter(prefix="/templates", tags=["templates"])


def _http_error(exc: TemplateError) -> HTTPException:
    if isinstance(exc, UnknownPlaceholderError):
        return HTTPException(status_code=400, detail={"message": str(exc), "name": exc.name})
    if isinstance(exc, (UnresolvedPlaceholderError, RenderError)):
        detail: Dict[str, object] = {"message": str(exc), "missing": list(exc.missing)}
        if isinstance(exc, RenderError):
            detail["index"] = exc.index
        return HTTPException(status_code=422, detail=detail)
    if isinstance(exc, ExecutionError):
        return HTTPException(
            status_code=502,
            detail={"message": str(exc), "stage": exc.stage, "returncode": exc.returncode, "stderr": exc.stderr},
        )
    return HTTPException(status_code=400, detail={"message": str(exc)})


@router.post("/placeholders", response_model=PlaceholdersResponse)
def placeholders(request: PlaceholdersRequest) -> PlaceholdersResponse:
    template = Template.from_text(request.source)
    return PlaceholdersResponse(placeholders=list(template.placeholders))


@router.post("/render", response_model=RenderResponse)
def render(request: RenderRequest) -> RenderResponse:
    template = Template.from_text(request.source)
    try:
        apply_values(template, request.values)
        return RenderResponse(rendered=template.render())
    except TemplateError as exc:
        raise _http_error(exc) from exc


@router.post("/assemble", response_model=RenderResponse)
def assemble(request: AssembleRequest) -> RenderResponse:
    assembler = Assembler()
    for source in request.sources:
        assembler.add_template(Template.from_text(source))
    try:
        for name, value in request.values.items():
            assembler.set_global(name, value)
        return RenderResponse(rendered=assembler.render_all())
    except TemplateError as exc:
        raise _http_error(exc) from exc


@router.post("/execute", response_model=ExecuteResponse)
async def execute(request: ExecuteRequest, settings=Depends(get_settings)) -> ExecuteResponse:
    if not settings.api_allow_execute:
        raise HTTPException(status_code=403, detail="Template execution is disabled on this server.")
    try:
        backend = get_backend(request.backend, settings)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    timeout = request.timeout or settings.execute_timeout
    reference = ExecutableReference(Template.from_text(request.source), backend=backend, timeout=timeout)
    for spec in request.dependencies:
        reference.with_dependency(spec)
    try:
        apply_values(reference.template, request.values)
        output = await reference.execute()
    except TemplateError as exc:
        raise _http_error(exc) from exc
    return ExecuteResponse(output=output)
