# app/routers/quiz.py
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from errors import UpstreamError
from logging_setup import get_logger
from models import QuizPayload, first_missing
from upstream import UPSTREAM_FAILURE, UpstreamAPI, get_upstream, new_request_id

logger = get_logger(__name__)

router = APIRouter(prefix="/api/quiz", tags=["quiz"])

QUIZ_REQUIRED = ["idUser", "idQuiz", "usuariPrincipal"]
CREATED_MESSAGE = "CRIADO COM SUCESSO"


def _upstream_failed(request_id: str, action: str, e: UpstreamError, **meta) -> JSONResponse:
    logger.error(f"{action} failed", extra={"request_id": request_id, "error": e.message, "url": e.url, **meta})
    return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)


@router.post("")
async def create_quiz(quiz: QuizPayload, upstream: UpstreamAPI = Depends(get_upstream)):
    request_id = new_request_id()
    logger.info("Creating quiz", extra={"request_id": request_id, "id_user": quiz.idUser, "id_quiz": quiz.idQuiz})

    missing = first_missing(quiz, QUIZ_REQUIRED)
    if missing:
        logger.warning("Required quiz field missing", extra={"request_id": request_id, "field": missing})
        return JSONResponse(status_code=400, content={"error": f"Campo {missing} é obrigatório."})

    try:
        response = await upstream.create_quiz(quiz.to_upstream())
    except UpstreamError as e:
        return _upstream_failed(request_id, "Quiz creation", e)

    if response.status_code in (200, 201):
        try:
            body = response.json()
        except ValueError as e:
            logger.error("Could not parse upstream JSON", extra={"request_id": request_id, "error": str(e)})
            return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)

        message = body.get("message") if isinstance(body, dict) else None
        logger.info("Quiz created", extra={"request_id": request_id, "status": response.status_code, "upstream_message": message})
        if message == CREATED_MESSAGE:
            return {"message": message}
        return body

    logger.error(
        "Quiz creation rejected",
        extra={"request_id": request_id, "status": response.status_code, "error": response.text},
    )
    return JSONResponse(status_code=response.status_code, content={"error": response.text})


@router.put("")
async def update_quiz(quiz: QuizPayload, upstream: UpstreamAPI = Depends(get_upstream)):
    request_id = new_request_id()
    logger.info("Updating quiz", extra={"request_id": request_id, "id_user": quiz.idUser, "id_quiz": quiz.idQuiz})

    if first_missing(quiz, ["idQuiz"]):
        logger.warning("idQuiz missing on update", extra={"request_id": request_id})
        return JSONResponse(status_code=400, content={"error": "Campo idQuiz é obrigatório para atualização."})

    try:
        response = await upstream.update_quiz(quiz.to_upstream())
    except UpstreamError as e:
        return _upstream_failed(request_id, "Quiz update", e)

    if not response.is_success:
        logger.error(
            "Quiz update rejected",
            extra={"request_id": request_id, "status": response.status_code, "error": response.text},
        )
        return JSONResponse(status_code=response.status_code, content={"error": response.text})

    try:
        body = response.json()
    except ValueError:
        logger.info("Quiz updated (empty response body)", extra={"request_id": request_id, "status": response.status_code})
        return Response(status_code=response.status_code)

    logger.info("Quiz updated", extra={"request_id": request_id, "status": response.status_code})
    return JSONResponse(status_code=response.status_code, content=body)


@router.get("")
async def check_quiz(upstream: UpstreamAPI = Depends(get_upstream)):
    try:
        response = await upstream.check_quiz()
    except UpstreamError as e:
        return _upstream_failed(new_request_id(), "Quiz check", e)

    if response.status_code == 200:
        return True
    return JSONResponse(status_code=response.status_code, content=False)


@router.get("/getPacientes/{id_user}")
async def get_patients(id_user: str, upstream: UpstreamAPI = Depends(get_upstream)):
    request_id = new_request_id()
    logger.info("Fetching patients", extra={"request_id": request_id, "id_user": id_user})

    try:
        response = await upstream.get_patients(id_user)
        if response.status_code == 200:
            patients = response.json()
            # The upstream body is passed through as-is, even when it is not a list
            count = len(patients) if isinstance(patients, (list, dict)) else None
            logger.info("Patients found", extra={"request_id": request_id, "id_user": id_user, "count": count})
            return patients
    except UpstreamError as e:
        return _upstream_failed(request_id, "Patient lookup", e, id_user=id_user)
    except ValueError as e:
        logger.error("Could not parse upstream JSON", extra={"request_id": request_id, "error": str(e)})
        return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)

    logger.warning("Patient lookup rejected", extra={"request_id": request_id, "id_user": id_user, "status": response.status_code})
    return JSONResponse(
        status_code=response.status_code,
        content={"error": f"Erro ao buscar pacientes: {response.reason_phrase}"},
    )


@router.get("/resultado/{id_quiz}/{id_user}")
async def get_quiz_result(id_quiz: str, id_user: str, upstream: UpstreamAPI = Depends(get_upstream)):
    request_id = new_request_id()
    meta = {"request_id": request_id, "id_quiz": id_quiz, "id_user": id_user}
    logger.info("Fetching quiz result", extra=meta)

    try:
        response = await upstream.get_result(id_quiz, id_user)
        if response.status_code == 200:
            result = response.json()
            logger.info("Quiz result found", extra=meta)
            return result
    except UpstreamError as e:
        return _upstream_failed(request_id, "Quiz result lookup", e, id_quiz=id_quiz, id_user=id_user)
    except ValueError as e:
        logger.error("Could not parse upstream JSON", extra={**meta, "error": str(e)})
        return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)

    logger.warning("Quiz result not found", extra={**meta, "status": response.status_code})
    return JSONResponse(
        status_code=response.status_code,
        content={"error": f"Erro ao buscar resultado do quiz: {response.reason_phrase}"},
    )


# Registered last: the catch-all segment would otherwise shadow getPacientes
@router.get("/{id_quiz}")
async def get_quiz(id_quiz: str, upstream: UpstreamAPI = Depends(get_upstream)):
    request_id = new_request_id()
    logger.info("Fetching quiz", extra={"request_id": request_id, "id_quiz": id_quiz})

    try:
        response = await upstream.get_quiz(id_quiz)
        if response.status_code == 200:
            data = response.json()
            logger.info("Quiz found", extra={"request_id": request_id, "id_quiz": id_quiz})
            return data
    except UpstreamError as e:
        return _upstream_failed(request_id, "Quiz lookup", e, id_quiz=id_quiz)
    except ValueError as e:
        logger.error("Could not parse upstream JSON", extra={"request_id": request_id, "error": str(e)})
        return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)

    logger.warning("Quiz not found", extra={"request_id": request_id, "id_quiz": id_quiz, "status": response.status_code})
    return JSONResponse(status_code=response.status_code, content={"error": "Quiz não encontrado"})
