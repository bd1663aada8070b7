# JSON API consumed by the Next.js pages.
# Thin layer: every route delegates to database.py / associations.py / auth.py.
import logging
import os
from contextlib import asynccontextmanager
from functools import lru_cache
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import BaseModel, StrictInt

import associations
import database
from auth import AuthSession, SupabaseAuthClient, get_user_from_token
from config import get_settings, is_development
from errors import AppError, AuthenticationError, NotFoundError
from logging_utils import configure_logging

logger = logging.getLogger(__name__)

PKCE_COOKIE = "pkce_verifier"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Missing SUPABASE_URL / SUPABASE_ANON_KEY / APP_URL stops the server here
    settings = get_settings()
    logger.info("[STARTUP] Serving %s", settings.app_url)
    if database.is_database_configured():
        logger.info("[STARTUP] Database configured")
    else:
        logger.warning("[STARTUP] DATABASE_URL not set, data routes will answer 503")
    yield


app = FastAPI(title="Avalia UERJ API", version="0.1", lifespan=lifespan)

# Only the frontend origin; never a wildcard since credentials are allowed
app_url = (os.getenv("APP_URL") or "").rstrip("/")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[app_url] if app_url else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' 'unsafe-eval' https://*.supabase.co",
    "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
    "font-src 'self' https://fonts.gstatic.com",
    "img-src 'self' data: https:",
    "connect-src 'self' https://*.supabase.co wss://*.supabase.co",
    "frame-src 'none'",
    "object-src 'none'",
    "base-uri 'self'",
    "form-action 'self'",
])


@app.middleware("http")
async def security_headers(request: Request, call_next):
    production = not is_development()
    path = request.url.path

    # Never serve source maps or TypeScript sources in production
    if production and (path.endswith(".map") or path.endswith(".ts") or path.endswith(".tsx")):
        return PlainTextResponse("Not Found", status_code=404)

    response = await call_next(request)
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
    if production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=(), payment=()"
        response.headers["Cross-Origin-Embedder-Policy"] = "require-corp"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


# ──────────────────────────────────────────────────────────────
# Dependencies
# ──────────────────────────────────────────────────────────────

@lru_cache(maxsize=1)
def get_auth_client() -> SupabaseAuthClient:
    return SupabaseAuthClient()


def current_user(authorization: str | None = Header(default=None)) -> dict:
    """The logged-in user from the Supabase JWT. Required for every write."""
    user = get_user_from_token(authorization)
    if user is None:
        raise AuthenticationError("Faça login com seu email institucional para continuar.")
    return user


# Request bodies
class ProfessorCreate(BaseModel):
    nome: str
    email: str | None = None


class RatingCreate(BaseModel):
    professor_id: str
    disciplina_id: str
    estrelas: StrictInt
    comentario: str | None = None


class FeedbackCreate(BaseModel):
    tipo: str
    titulo: str
    descricao: str
    pagina: str | None = None


class SignInRequest(BaseModel):
    email: str


class CompleteSignInRequest(BaseModel):
    url: str  # full redirect URL, fragment included


class AssociationCreate(BaseModel):
    disciplina_codigo: str
    cursos_codigos: list[str]
    periodo_sugerido: str | None = None
    obrigatoria: bool = True


# ──────────────────────────────────────────────────────────────
# Catalog
# ──────────────────────────────────────────────────────────────

@app.get("/")  # Root endpoint to check if the API is running
def root():
    return {"message": "Avalia UERJ API is running!"}


@app.get("/stats")
def general_stats():
    return database.get_general_stats()


@app.get("/search")
def search(q: str = ""):
    return database.search_disciplines_and_professors(q)


@app.get("/courses")
def list_courses():
    return database.get_courses()


def _course_or_404(codigo: str) -> dict:
    course = database.get_course_by_code(codigo)
    if course is None:
        raise NotFoundError("Curso não encontrado", {"codigo": codigo})
    return course


@app.get("/courses/{codigo}")
def get_course(codigo: str):
    return _course_or_404(codigo)


@app.get("/courses/{codigo}/emphases")
def list_emphases(codigo: str):
    course = _course_or_404(codigo)
    return database.get_emphases_by_course(course["id"])


@app.get("/courses/{codigo}/disciplines")
def list_basic_disciplines(codigo: str):
    return database.get_basic_disciplines_for_course(codigo)


@app.get("/courses/{codigo}/emphases/{enfase}")
def get_emphasis(codigo: str, enfase: str):
    emphasis = database.get_emphasis_by_code(codigo, enfase)
    if emphasis is None:
        raise NotFoundError("Ênfase não encontrada", {"curso": codigo, "enfase": enfase})
    return emphasis


@app.get("/courses/{codigo}/emphases/{enfase}/disciplines")
def list_emphasis_disciplines(codigo: str, enfase: str):
    return database.get_emphasis_disciplines(codigo, enfase)


@app.get("/disciplines/{codigo_ou_id}")
def get_discipline(codigo_ou_id: str):
    discipline = database.get_discipline_by_code(codigo_ou_id)
    if discipline is None:
        raise NotFoundError("Disciplina não encontrada", {"disciplina": codigo_ou_id})
    return database.get_discipline_details(discipline["id"])


@app.get("/disciplines/{disciplina_id}/professors")
def list_discipline_professors(disciplina_id: str):
    return database.get_professors_by_discipline(disciplina_id)


@app.post("/disciplines/{disciplina_id}/professors", status_code=201)
def create_discipline_professor(disciplina_id: str, body: ProfessorCreate, user: dict = Depends(current_user)):
    return database.create_professor_for_discipline(body.nome, disciplina_id, body.email)


@app.post("/disciplines/{disciplina_id}/professors/{professor_id}", status_code=201)
def link_professor(disciplina_id: str, professor_id: str, user: dict = Depends(current_user)):
    return database.link_professor_to_discipline(professor_id, disciplina_id)


# ──────────────────────────────────────────────────────────────
# Professors & ratings
# ──────────────────────────────────────────────────────────────

@app.get("/professors/search")
def search_professors(q: str = ""):
    return database.search_professors(q)


@app.post("/professors", status_code=201)
def create_professor(body: ProfessorCreate, user: dict = Depends(current_user)):
    return database.create_professor(body.nome, body.email)


@app.get("/professors/{professor_id}")
def get_professor(professor_id: str):
    return database.get_professor_profile(professor_id)


@app.get("/ratings/check")
def check_rating(professor_id: str, disciplina_id: str, user: dict = Depends(current_user)):
    return {"already_rated": database.check_user_rating(professor_id, disciplina_id, user["id"])}


@app.post("/ratings", status_code=201)
def create_rating(body: RatingCreate, user: dict = Depends(current_user)):
    return database.create_rating(
        body.professor_id, body.disciplina_id, user["id"], body.estrelas, body.comentario
    )


@app.post("/feedback", status_code=201)
def create_feedback(body: FeedbackCreate, user: dict = Depends(current_user)):
    return database.create_feedback(user.get("email") or "", body.tipo, body.titulo, body.descricao, body.pagina)


# ──────────────────────────────────────────────────────────────
# Admin: discipline <-> course associations
# ──────────────────────────────────────────────────────────────

@app.post("/admin/associations", status_code=201)
def create_associations(body: AssociationCreate, user: dict = Depends(current_user)):
    return associations.associate_discipline_courses(
        body.disciplina_codigo, body.cursos_codigos, body.periodo_sugerido, body.obrigatoria
    )


@app.delete("/admin/associations/{disciplina_codigo}/{curso_codigo}")
def delete_association(disciplina_codigo: str, curso_codigo: str, user: dict = Depends(current_user)):
    if not associations.remove_discipline_course(disciplina_codigo, curso_codigo):
        raise NotFoundError("Associação não encontrada")
    return {"removed": True}


@app.get("/admin/associations/discipline/{disciplina_codigo}")
def courses_for_discipline(disciplina_codigo: str):
    return associations.list_courses_for_discipline(disciplina_codigo)


@app.get("/admin/associations/course/{curso_codigo}")
def disciplines_for_course(curso_codigo: str):
    return associations.list_disciplines_for_course(curso_codigo)


# ──────────────────────────────────────────────────────────────
# Auth (magic link)
# ──────────────────────────────────────────────────────────────

@app.post("/auth/sign-in")
def sign_in(body: SignInRequest, response: Response, client: SupabaseAuthClient = Depends(get_auth_client)):
    auth_session = AuthSession(client)
    auth_session.sign_in_with_email(body.email)
    # PKCE verifier must survive until the link comes back to this browser
    response.set_cookie(
        PKCE_COOKIE,
        auth_session.code_verifier,
        httponly=True,
        secure=not is_development(),
        samesite="lax",
        max_age=3600,
    )
    return {"message": "Link de acesso enviado. Verifique seu email institucional."}


@app.get("/auth/callback")
def auth_callback(request: Request):
    """Where the provider redirects. Hand the parameters to the home page, which completes the login."""
    params = request.query_params
    token_hash, otp_type, code = params.get("token_hash"), params.get("type"), params.get("code")

    if token_hash and otp_type:
        logger.info("[AUTH] Forwarding magic link token hash to client")
        return RedirectResponse(f"/?{urlencode({'token_hash': token_hash, 'type': otp_type})}")
    if code:
        logger.info("[AUTH] Forwarding PKCE code to client")
        return RedirectResponse(f"/?{urlencode({'code': code})}")

    next_path = params.get("next", "/")
    # only same-site paths, never an absolute URL
    if not next_path.startswith("/") or next_path.startswith("//"):
        next_path = "/"
    return RedirectResponse(next_path)


@app.post("/auth/session")
def complete_sign_in(
    body: CompleteSignInRequest,
    request: Request,
    response: Response,
    client: SupabaseAuthClient = Depends(get_auth_client),
):
    auth_session = AuthSession(client)
    session = auth_session.complete_sign_in(body.url, code_verifier=request.cookies.get(PKCE_COOKIE))
    if session is None:
        raise AuthenticationError("Nenhum parâmetro de autenticação encontrado.")
    response.delete_cookie(PKCE_COOKIE)
    return {
        "access_token": session["access_token"],
        "refresh_token": session.get("refresh_token"),
        "expires_in": session.get("expires_in"),
        "user": session.get("user"),
    }


@app.post("/auth/sign-out")
def sign_out(authorization: str | None = Header(default=None), client: SupabaseAuthClient = Depends(get_auth_client)):
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Sessão não encontrada.")
    auth_session = AuthSession(client)
    auth_session.initialize({"access_token": authorization.split(" ", 1)[1]})
    auth_session.sign_out()
    return {"signed_out": True}


if __name__ == "__main__":
    import uvicorn

    # Railway / Render set PORT; locally defaults to 8000
    uvicorn.run("server:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=is_development())
