# app/routers/users.py
from typing import Optional

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from errors import UpstreamError
from logging_setup import get_logger
from models import RegisterRequest, first_missing
from upstream import UPSTREAM_FAILURE, UpstreamAPI, get_upstream, new_request_id

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["users"])

REGISTER_REQUIRED = ["nome", "email", "senha"]


@router.post("/register")
async def register(req: RegisterRequest, upstream: UpstreamAPI = Depends(get_upstream)):
    request_id = new_request_id()
    logger.info("Registering user", extra={"request_id": request_id, "email": req.email, "nome": req.nome})

    missing = first_missing(req, REGISTER_REQUIRED)
    if missing:
        logger.warning("Required field missing", extra={"request_id": request_id, "field": missing})
        return JSONResponse(status_code=400, content={"error": f"Campo {missing} é obrigatório."})

    payload = req.to_upstream()
    logger.info("Sending user to upstream API", extra={"request_id": request_id, "email": payload["email"]})

    try:
        response = await upstream.save_user(payload)
    except UpstreamError as e:
        logger.error("User registration failed", extra={"request_id": request_id, "error": e.message, "url": e.url})
        return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)

    if response.status_code == 204:
        logger.info("User registered", extra={"request_id": request_id, "status": 204})
        return Response(status_code=204)

    try:
        data = response.json()
    except ValueError as e:
        logger.error("Could not parse upstream JSON", extra={"request_id": request_id, "error": str(e)})
        data = {"message": "Erro ao processar a resposta da API"}

    logger.info("Upstream API answered", extra={"request_id": request_id, "status": response.status_code})
    return JSONResponse(status_code=response.status_code, content=data)


@router.get("/login")
async def login(
    email: Optional[str] = None,
    senha: Optional[str] = None,
    upstream: UpstreamAPI = Depends(get_upstream),
):
    request_id = new_request_id()
    logger.info("Login attempt", extra={"request_id": request_id, "email": email})

    if not email or not senha:
        logger.warning("Login credentials missing", extra={"request_id": request_id})
        return JSONResponse(status_code=400, content={"error": "Email e senha são obrigatórios."})

    try:
        response = await upstream.login(email, senha)
        data = response.json()
    except UpstreamError as e:
        logger.error("Login failed", extra={"request_id": request_id, "error": e.message, "url": e.url})
        return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)
    except ValueError as e:
        logger.error("Login failed", extra={"request_id": request_id, "email": email, "error": str(e)})
        return JSONResponse(status_code=500, content=UPSTREAM_FAILURE)

    if response.status_code == 200 and isinstance(data, dict) and data.get("result") is True:
        logger.info("Login succeeded", extra={"request_id": request_id, "email": email, "user_id": data.get("idUser")})
        return {
            "success": True,
            "message": "Login realizado com sucesso",
            "idUser": data.get("idUser"),
            "nome": data.get("nome"),
        }

    logger.warning("Login rejected", extra={"request_id": request_id, "email": email})
    return JSONResponse(
        status_code=401,
        content={"success": False, "message": "Email ou senha incorretos"},
    )
