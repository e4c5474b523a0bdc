# app/routers/report.py
import re
import unicodedata
from typing import Any, Dict
from urllib.parse import quote

from fastapi import APIRouter, Body, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from errors import RenderError
from logging_setup import get_logger
from models import ReportRequest
from pdf_report import BufferSink, ReportRenderer
from upstream import new_request_id

logger = get_logger(__name__)

router = APIRouter(tags=["report"])

REPORT_REQUIRED = ["nome", "idade", "historicoPessoal", "familiares"]

renderer = ReportRenderer()


def report_filename(subject_name: str) -> str:
    return f"Relatorio_{subject_name}.pdf"


def content_disposition(filename: str) -> str:
    """Attachment header that survives non-ASCII names and header metacharacters."""
    ascii_name = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    ascii_name = re.sub(r'[^A-Za-z0-9._-]+', "_", ascii_name) or "Relatorio.pdf"
    return f"attachment; filename={ascii_name}; filename*=UTF-8''{quote(filename, safe='')}"


@router.post("/generatepdf")
async def generate_pdf(payload: Dict[str, Any] = Body(...)):
    request_id = new_request_id()
    logger.info(
        "Generating PDF",
        extra={"request_id": request_id, "nome": payload.get("nome"), "idade": payload.get("idade")},
    )

    if any(payload.get(field) is None for field in REPORT_REQUIRED) or not payload.get("nome"):
        logger.warning("Incomplete PDF data", extra={"request_id": request_id})
        return JSONResponse(status_code=400, content={"error": "Dados incompletos."})

    try:
        report_request = ReportRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning("Invalid PDF data", extra={"request_id": request_id, "error": str(e)})
        return JSONResponse(status_code=400, content={"error": "Dados incompletos."})

    sink = BufferSink()
    try:
        await run_in_threadpool(renderer.render, report_request, sink)
    except RenderError as e:
        logger.error(
            "PDF generation failed",
            extra={"request_id": request_id, "nome": report_request.subject_name, "error": e.message, "code": e.code},
        )
        return JSONResponse(status_code=500, content={"error": "Erro ao gerar PDF"})

    logger.info("PDF generated", extra={"request_id": request_id, "nome": report_request.subject_name})
    return Response(
        content=sink.getvalue(),
        media_type="application/pdf",
        headers={"Content-Disposition": content_disposition(report_filename(report_request.subject_name))},
    )
