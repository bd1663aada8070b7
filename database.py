# database.py
# Data access layer: validation + rate limiting + queries against the Supabase Postgres.
# Everything here is stateless; the database is the only source of truth.
import logging
import uuid
from contextlib import contextmanager

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import db_connection
from db_connection import Session as DBSession
from db_setup import (
    Course, Discipline, DisciplineCourse, DisciplineEmphasis, Emphasis, Feedback,
    Professor, ProfessorDiscipline, Rating,
)
from errors import (
    AppError, BackendError, ConfigurationError, DuplicateError, NotFoundError,
    RateLimitError, ValidationError,
)
from logging_utils import secure_error, secure_log
from rate_limiter import check_rate_limit
from validation import sanitize_email, sanitize_string, validate_stars, validate_uuid

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000
FEEDBACK_TYPES = ("erro", "sugestao", "bug")
SEARCH_LIMIT = 10

# Codes of the disciplines every engineering course shares (see mark_basic_disciplines.py)
BASIC_DISCIPLINE_CODES = [
    "IME01-00508", "IME01-00854", "IME01-03646", "IME03-01913", "IME02-01388",
    "IME02-04629", "IME04-04541", "IME05-05316", "FIS01-05095", "FIS02-05143",
    "FIS03-05185", "FIS04-05212", "QUI07-03793", "QUI07-03865", "IME03-02046",
    "IME03-00587", "IME03-00738", "IME04-00627", "FEN03-05787", "FEN07-02162",
    "FAF03-04439", "FCE02-04657", "FEN07-02722",
]


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def is_database_configured() -> bool:
    return db_connection.is_configured()


def require_configured():
    if not is_database_configured():
        raise ConfigurationError("Banco de dados não está configurado. Verifique as variáveis de ambiente.")


@contextmanager
def backend_errors(message: str):
    """Turn raw SQLAlchemy failures into a generic BackendError (details only logged in dev)."""
    try:
        yield
    except AppError:
        raise
    except SQLAlchemyError as e:
        secure_error(logger, message, e)
        raise BackendError("Erro ao acessar o banco de dados. Tente novamente.") from e


def _is_unique_violation(error: IntegrityError) -> bool:
    # 23505 = unique_violation on Postgres; SQLite just says so in the message
    if getattr(error.orig, "pgcode", None) == "23505":
        return True
    text = str(error.orig).lower()
    return "unique constraint" in text or "duplicate key" in text


def _to_uuid(value: str, message: str) -> uuid.UUID:
    if not validate_uuid(value):
        raise ValidationError(message)
    return uuid.UUID(value)


def row_to_dict(row) -> dict:
    """Column values of an ORM row, with ids and timestamps as strings (JSON-ready)."""
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, uuid.UUID):
            value = str(value)
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        data[column.key] = value
    return data


def _average(stars: list[int]) -> float:
    return sum(stars) / len(stars) if stars else 0


def _discipline_counts(session, disciplina_id) -> dict:
    total_professores = (
        session.query(func.count(ProfessorDiscipline.id))
        .filter(ProfessorDiscipline.disciplina_id == disciplina_id)
        .scalar()
    )
    total_avaliacoes = (
        session.query(func.count(Rating.id))
        .filter(Rating.disciplina_id == disciplina_id)
        .scalar()
    )
    return {"total_professores": total_professores or 0, "total_avaliacoes": total_avaliacoes or 0}


def _discipline_summary(session, disciplina: Discipline, association, tipo: str) -> dict:
    """Flattened discipline + association row + counts, the shape the course pages list."""
    return {
        "id": str(disciplina.id),
        "codigo": disciplina.codigo,
        "nome": disciplina.nome,
        "periodo": disciplina.periodo,
        "carga_horaria": disciplina.carga_horaria,
        "periodo_sugerido": association.periodo_sugerido,
        "obrigatoria": association.obrigatoria,
        **_discipline_counts(session, disciplina.id),
        "tipo": tipo,
        "pre_requisitos": None,
        "curso_nome": None,
        "curso_codigo": None,
        "enfase_nome": None,
        "enfase_codigo": None,
    }


# ──────────────────────────────────────────────────────────────
# Courses and emphases
# ──────────────────────────────────────────────────────────────

def get_courses() -> list[dict]:
    require_configured()
    with backend_errors("Error fetching courses"), DBSession() as session:
        courses = session.query(Course).order_by(Course.nome).all()
        return [row_to_dict(c) for c in courses]


def get_course_by_code(codigo: str) -> dict | None:
    """Look a course up by its code (case-insensitive). None if it doesn't exist."""
    require_configured()
    codigo_clean = sanitize_string(codigo).upper()
    if not codigo_clean:
        raise ValidationError("Código do curso é obrigatório")

    secure_log(logger, "Fetching course by code", {"codigo": codigo_clean})
    with backend_errors("Error fetching course"), DBSession() as session:
        course = session.query(Course).filter(Course.codigo == codigo_clean).first()
        if course is None:
            return None
        secure_log(logger, "Course found", {"id": str(course.id)})
        return row_to_dict(course)


def get_emphases_by_course(curso_id: str) -> list[dict]:
    require_configured()
    course_uuid = _to_uuid(curso_id, "ID do curso inválido")
    with backend_errors("Error fetching emphases"), DBSession() as session:
        emphases = (
            session.query(Emphasis)
            .filter(Emphasis.curso_id == course_uuid)
            .order_by(Emphasis.nome)
            .all()
        )
        return [row_to_dict(e) for e in emphases]


def get_emphasis_by_code(curso_codigo: str, enfase_codigo: str) -> dict | None:
    require_configured()
    with backend_errors("Error fetching emphasis"), DBSession() as session:
        emphasis = (
            session.query(Emphasis)
            .join(Course, Emphasis.curso_id == Course.id)
            .filter(
                Emphasis.codigo == sanitize_string(enfase_codigo).upper(),
                Course.codigo == sanitize_string(curso_codigo).upper(),
            )
            .first()
        )
        if emphasis is None:
            return None
        return {**row_to_dict(emphasis), "cursos": {"codigo": emphasis.curso.codigo}}


# ──────────────────────────────────────────────────────────────
# Disciplines
# ──────────────────────────────────────────────────────────────

def get_basic_disciplines_for_course(curso_codigo: str) -> list[dict]:
    """Disciplines attached to the course itself (no emphasis), by suggested period."""
    require_configured()
    codigo_clean = sanitize_string(curso_codigo).upper()
    if not codigo_clean:
        raise ValidationError("Código do curso é obrigatório")

    secure_log(logger, "Fetching basic disciplines for course", {"curso": codigo_clean})
    with backend_errors("Error fetching basic disciplines"), DBSession() as session:
        associations = (
            session.query(DisciplineCourse)
            .join(Course, DisciplineCourse.curso_id == Course.id)
            .filter(Course.codigo == codigo_clean)
            .order_by(DisciplineCourse.periodo_sugerido)
            .all()
        )
        secure_log(logger, "Basic disciplines found", {"count": len(associations)})
        return [_discipline_summary(session, a.disciplina, a, "básica") for a in associations]


def get_emphasis_disciplines(curso_codigo: str, enfase_codigo: str) -> list[dict]:
    """Disciplines specific to one emphasis of a course."""
    require_configured()
    with backend_errors("Error fetching emphasis disciplines"), DBSession() as session:
        associations = (
            session.query(DisciplineEmphasis)
            .join(Emphasis, DisciplineEmphasis.enfase_id == Emphasis.id)
            .join(Course, Emphasis.curso_id == Course.id)
            .filter(
                Emphasis.codigo == sanitize_string(enfase_codigo).upper(),
                Course.codigo == sanitize_string(curso_codigo).upper(),
            )
            .order_by(DisciplineEmphasis.periodo_sugerido)
            .all()
        )
        return [_discipline_summary(session, a.disciplina, a, "específica") for a in associations]


def get_discipline_by_code(codigo_ou_id: str) -> dict | None:
    """Find a discipline by code first, then by id (pages link with either)."""
    require_configured()
    with backend_errors("Error fetching discipline"), DBSession() as session:
        discipline = (
            session.query(Discipline)
            .filter(Discipline.codigo == sanitize_string(codigo_ou_id).upper())
            .first()
        )
        if discipline is None and validate_uuid(codigo_ou_id):
            discipline = session.get(Discipline, uuid.UUID(codigo_ou_id))
        return row_to_dict(discipline) if discipline else None


def get_discipline_details(disciplina_id: str) -> dict | None:
    """Discipline + its (first) course association + professor/rating counts."""
    require_configured()
    if not validate_uuid(disciplina_id):
        return None

    with backend_errors("Error fetching discipline details"), DBSession() as session:
        discipline = session.get(Discipline, uuid.UUID(disciplina_id))
        if discipline is None:
            return None

        association = (
            session.query(DisciplineCourse)
            .filter(DisciplineCourse.disciplina_id == discipline.id)
            .first()
        )
        course = association.curso if association else None

        return {
            "id": str(discipline.id),
            "codigo": discipline.codigo,
            "nome": discipline.nome,
            "periodo": discipline.periodo,
            "carga_horaria": discipline.carga_horaria,
            "tipo": discipline.tipo,
            "periodo_sugerido": association.periodo_sugerido if association else None,
            "obrigatoria": association.obrigatoria if association else False,
            **_discipline_counts(session, discipline.id),
            "pre_requisitos": discipline.pre_requisitos,
            "curso_nome": course.nome if course else None,
            "curso_codigo": course.codigo if course else None,
            "enfase_nome": None,
            "enfase_codigo": None,
        }


def mark_basic_disciplines(codigos: list[str] = BASIC_DISCIPLINE_CODES) -> int:
    """Flag the given discipline codes as tipo='básica'. Returns how many rows changed."""
    require_configured()
    with backend_errors("Error marking basic disciplines"), DBSession() as session:
        updated = (
            session.query(Discipline)
            .filter(Discipline.codigo.in_(codigos))
            .update({Discipline.tipo: "básica"}, synchronize_session=False)
        )
        session.commit()
        secure_log(logger, "Basic disciplines marked", {"count": updated})
        return updated


# ──────────────────────────────────────────────────────────────
# Professors
# ──────────────────────────────────────────────────────────────

def get_professors_by_discipline(disciplina_id: str) -> list[dict]:
    """Professors linked to a discipline with their overall stats, sorted by name."""
    require_configured()
    discipline_uuid = _to_uuid(disciplina_id, "ID da disciplina inválido")

    with backend_errors("Error fetching professors"), DBSession() as session:
        links = (
            session.query(ProfessorDiscipline)
            .filter(ProfessorDiscipline.disciplina_id == discipline_uuid)
            .all()
        )
        professors = []
        for link in links:
            professor = link.professor
            if professor is None:
                continue

            stars = [s for (s,) in session.query(Rating.estrelas).filter(Rating.professor_id == professor.id)]
            total_disciplinas = (
                session.query(func.count(ProfessorDiscipline.id))
                .filter(ProfessorDiscipline.professor_id == professor.id)
                .scalar()
            )
            professors.append({
                "id": str(professor.id),
                "nome": professor.nome,
                "email": professor.email,
                "total_disciplinas": total_disciplinas or 0,
                "total_avaliacoes": len(stars),
                "media_avaliacoes": _average(stars),
            })

        return sorted(professors, key=lambda p: p["nome"].casefold())


def search_professors(termo: str) -> list[dict]:
    """Name search used before creating a professor (to avoid duplicates)."""
    require_configured()
    termo_clean = sanitize_string(termo)
    if len(termo_clean) < 2:
        return []

    with backend_errors("Error searching professors"), DBSession() as session:
        professors = (
            session.query(Professor)
            .filter(Professor.nome.ilike(f"%{termo_clean}%"))
            .order_by(Professor.nome)
            .limit(SEARCH_LIMIT)
            .all()
        )
        return [{"id": str(p.id), "nome": p.nome, "email": p.email} for p in professors]


def get_professor_profile(professor_id: str) -> dict:
    """Everything the professor page shows: the professor, their ratings and per-discipline stats."""
    require_configured()
    professor_uuid = _to_uuid(professor_id, "ID do professor inválido")

    with backend_errors("Error fetching professor profile"), DBSession() as session:
        professor = session.get(Professor, professor_uuid)
        if professor is None:
            raise NotFoundError("Professor não encontrado", {"professor_id": professor_id})

        ratings = (
            session.query(Rating)
            .filter(Rating.professor_id == professor_uuid)
            .order_by(Rating.created_at.desc())
            .all()
        )
        avaliacoes = [
            {
                "id": str(r.id),
                "estrelas": r.estrelas,
                "comentario": r.comentario,
                "created_at": r.created_at.isoformat() if r.created_at else None,
                "disciplinas": {"nome": r.disciplina.nome, "codigo": r.disciplina.codigo} if r.disciplina else None,
            }
            for r in ratings
        ]

        links = (
            session.query(ProfessorDiscipline)
            .filter(ProfessorDiscipline.professor_id == professor_uuid)
            .all()
        )
        disciplinas = []
        for link in links:
            stars = [r.estrelas for r in ratings if r.disciplina_id == link.disciplina_id]
            disciplinas.append({
                "id": str(link.disciplina.id),
                "nome": link.disciplina.nome,
                "codigo": link.disciplina.codigo,
                "total_avaliacoes": len(stars),
                "media_estrelas": round(_average(stars), 1),
            })

        all_stars = [r.estrelas for r in ratings]
        return {
            "professor": {"id": str(professor.id), "nome": professor.nome, "email": professor.email},
            "avaliacoes": avaliacoes,
            "disciplinas": disciplinas,
            "stats": {
                "total_avaliacoes": len(all_stars),
                "media_estrelas": round(_average(all_stars), 1),
                "total_disciplinas": len(disciplinas),
            },
        }


def _clean_professor_input(nome: str, email: str | None) -> tuple[str, str | None]:
    nome_clean = sanitize_string(nome)
    if not nome_clean or len(nome_clean) < 2:
        raise ValidationError("Nome do professor deve ter pelo menos 2 caracteres")

    email_clean = None
    if email:
        email_clean = sanitize_email(email)
        if not email_clean:
            raise ValidationError("Email inválido")
    return nome_clean, email_clean


def _check_create_professor_limit(nome_clean: str):
    # Keyed by name so the same professor can't be spammed in
    if not check_rate_limit(f"create_prof_{nome_clean.lower()}"):
        raise RateLimitError("Muitas tentativas de cadastro. Tente novamente em alguns instantes.")


def _check_link_limit(professor_id: str, disciplina_id: str):
    if not check_rate_limit(f"link_{professor_id}_{disciplina_id}"):
        raise RateLimitError("Muitas tentativas de associação. Tente novamente em alguns instantes.")


def _find_link(session, professor_uuid: uuid.UUID, discipline_uuid: uuid.UUID):
    return (
        session.query(ProfessorDiscipline.id)
        .filter(
            ProfessorDiscipline.professor_id == professor_uuid,
            ProfessorDiscipline.disciplina_id == discipline_uuid,
        )
        .first()
    )


def _insert_link(session, professor_uuid: uuid.UUID, discipline_uuid: uuid.UUID) -> ProfessorDiscipline:
    link = ProfessorDiscipline(professor_id=professor_uuid, disciplina_id=discipline_uuid)
    session.add(link)
    session.flush()
    return link


def create_professor(nome: str, email: str | None = None) -> dict:
    """Create a professor. Names aren't unique; the UI searches first."""
    require_configured()
    nome_clean, email_clean = _clean_professor_input(nome, email)
    _check_create_professor_limit(nome_clean)

    secure_log(logger, "Creating professor", {"nome": nome_clean, "has_email": bool(email_clean)})
    with backend_errors("Error creating professor"), DBSession() as session:
        professor = Professor(nome=nome_clean, email=email_clean)
        session.add(professor)
        session.commit()
        secure_log(logger, "Professor created", {"id": str(professor.id)})
        return row_to_dict(professor)


def link_professor_to_discipline(professor_id: str, disciplina_id: str) -> dict:
    """Associate a professor with a discipline. At most one link per pair."""
    require_configured()
    professor_uuid = _to_uuid(professor_id, "ID do professor inválido")
    discipline_uuid = _to_uuid(disciplina_id, "ID da disciplina inválido")
    _check_link_limit(professor_id, disciplina_id)

    with backend_errors("Error linking professor"), DBSession() as session:
        if session.get(Professor, professor_uuid) is None:
            raise NotFoundError("Professor não encontrado", {"professor_id": professor_id})
        if session.get(Discipline, discipline_uuid) is None:
            raise NotFoundError("Disciplina não encontrada", {"disciplina_id": disciplina_id})

        if _find_link(session, professor_uuid, discipline_uuid):
            raise DuplicateError("Professor já está associado a esta disciplina")

        secure_log(logger, "Linking professor to discipline",
                   {"professor_id": professor_id, "disciplina_id": disciplina_id})
        try:
            link = _insert_link(session, professor_uuid, discipline_uuid)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            # Someone else linked them between our check and our insert
            if _is_unique_violation(e):
                raise DuplicateError("Professor já está associado a esta disciplina") from e
            raise

        secure_log(logger, "Professor linked")
        return row_to_dict(link)


def create_professor_for_discipline(nome: str, disciplina_id: str, email: str | None = None) -> dict:
    """Create a professor and link it to a discipline in ONE transaction.

    If the link fails the professor insert is rolled back too, so no orphan
    professor is left behind.
    """
    require_configured()
    nome_clean, email_clean = _clean_professor_input(nome, email)
    discipline_uuid = _to_uuid(disciplina_id, "ID da disciplina inválido")
    _check_create_professor_limit(nome_clean)

    with backend_errors("Error creating professor for discipline"), DBSession() as session:
        if session.get(Discipline, discipline_uuid) is None:
            raise NotFoundError("Disciplina não encontrada", {"disciplina_id": disciplina_id})

        try:
            professor = Professor(nome=nome_clean, email=email_clean)
            session.add(professor)
            session.flush()  # need professor.id for the link
            _insert_link(session, professor.id, discipline_uuid)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise

        secure_log(logger, "Professor created and linked", {"id": str(professor.id)})
        return row_to_dict(professor)


# ──────────────────────────────────────────────────────────────
# Ratings
# ──────────────────────────────────────────────────────────────

def check_user_rating(professor_id: str, disciplina_id: str, usuario_id: str) -> bool:
    """Has this user already rated this professor for this discipline?

    Bad ids or a failing query answer False (logged), same as "not rated yet".
    """
    require_configured()
    if not (validate_uuid(professor_id) and validate_uuid(disciplina_id) and validate_uuid(usuario_id)):
        secure_error(logger, "Invalid ids passed to rating check")
        return False

    try:
        with DBSession() as session:
            existing = (
                session.query(Rating.id)
                .filter(
                    Rating.professor_id == uuid.UUID(professor_id),
                    Rating.disciplina_id == uuid.UUID(disciplina_id),
                    Rating.usuario_id == uuid.UUID(usuario_id),
                )
                .first()
            )
    except SQLAlchemyError as e:
        secure_error(logger, "Error checking existing rating", e)
        return False

    exists = existing is not None
    secure_log(logger, "Existing rating check", {"exists": exists})
    return exists


def create_rating(
    professor_id: str,
    disciplina_id: str,
    usuario_id: str,
    estrelas: int,
    comentario: str | None = None,
) -> dict:
    """Rate a professor for a discipline. One rating per (professor, discipline, user)."""
    require_configured()
    professor_uuid = _to_uuid(professor_id, "ID do professor inválido")
    discipline_uuid = _to_uuid(disciplina_id, "ID da disciplina inválido")
    user_uuid = _to_uuid(usuario_id, "ID do usuário inválido")
    if not validate_stars(estrelas):
        raise ValidationError("Número de estrelas deve ser entre 1 e 5")

    comentario_clean = None
    if comentario:
        comentario_clean = sanitize_string(comentario, max_length=None)
        if len(comentario_clean) > MAX_COMMENT_LENGTH:
            raise ValidationError("Comentário muito longo (máximo 1000 caracteres)")
        comentario_clean = comentario_clean or None

    if not check_rate_limit(f"avaliacao_{usuario_id}"):
        raise RateLimitError("Muitas avaliações em pouco tempo. Aguarde antes de avaliar novamente.")

    if check_user_rating(professor_id, disciplina_id, usuario_id):
        raise DuplicateError("Você já avaliou este professor nesta disciplina")

    secure_log(logger, "Creating rating", {
        "professor_id": professor_id,
        "disciplina_id": disciplina_id,
        "usuario_id": usuario_id,
        "estrelas": estrelas,
        "has_comentario": bool(comentario_clean),
    })
    with backend_errors("Error creating rating"), DBSession() as session:
        rating = Rating(
            professor_id=professor_uuid,
            disciplina_id=discipline_uuid,
            usuario_id=user_uuid,
            estrelas=estrelas,
            comentario=comentario_clean,
        )
        try:
            session.add(rating)
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if _is_unique_violation(e):
                raise DuplicateError("Você já avaliou este professor nesta disciplina") from e
            raise

        secure_log(logger, "Rating created", {"id": str(rating.id)})
        return row_to_dict(rating)


# ──────────────────────────────────────────────────────────────
# Search, stats, feedback
# ──────────────────────────────────────────────────────────────

def search_disciplines_and_professors(termo: str) -> list[dict]:
    """Home page search. Terms shorter than 3 chars return nothing."""
    require_configured()
    termo = sanitize_string(termo)
    if len(termo) < 3:
        return []

    results = []
    with backend_errors("Error searching"), DBSession() as session:
        disciplines = (
            session.query(Discipline)
            .filter(or_(
                Discipline.codigo.ilike(f"%{termo.upper()}%"),
                Discipline.nome.ilike(f"%{termo.lower()}%"),
            ))
            .limit(SEARCH_LIMIT)
            .all()
        )
        for discipline in disciplines:
            names = [
                nome for (nome,) in session.query(Professor.nome)
                .join(ProfessorDiscipline, ProfessorDiscipline.professor_id == Professor.id)
                .filter(ProfessorDiscipline.disciplina_id == discipline.id)
            ]
            results.append({
                "tipo": "disciplina",
                "id": str(discipline.id),
                "codigo": discipline.codigo,
                "nome": discipline.nome,
                "professor": ", ".join(names) if names else "Não informado",
            })

        professors = (
            session.query(Professor)
            .filter(Professor.nome.ilike(f"%{termo.lower()}%"))
            .limit(SEARCH_LIMIT)
            .all()
        )
        for professor in professors:
            discipline_names = [
                nome for (nome,) in session.query(Discipline.nome)
                .join(ProfessorDiscipline, ProfessorDiscipline.disciplina_id == Discipline.id)
                .filter(ProfessorDiscipline.professor_id == professor.id)
            ]
            stars = [s for (s,) in session.query(Rating.estrelas).filter(Rating.professor_id == professor.id)]
            results.append({
                "tipo": "professor",
                "id": str(professor.id),
                "nome": professor.nome,
                "email": professor.email,
                "disciplinas": discipline_names[:3],
                "avaliacao": _average(stars),
            })

    return results


def get_general_stats() -> dict:
    require_configured()
    with backend_errors("Error fetching stats"), DBSession() as session:
        return {
            "total_cursos": session.query(func.count(Course.id)).scalar() or 0,
            "total_disciplinas": session.query(func.count(Discipline.id)).scalar() or 0,
            "total_professores": session.query(func.count(Professor.id)).scalar() or 0,
            "total_avaliacoes": session.query(func.count(Rating.id)).scalar() or 0,
        }


def create_feedback(
    usuario_email: str,
    tipo: str,
    titulo: str,
    descricao: str,
    pagina: str | None = None,
) -> dict:
    """Store an error report / suggestion. Append-only."""
    require_configured()
    email_clean = sanitize_email(usuario_email)
    if not email_clean:
        raise ValidationError("Email inválido")

    titulo_clean = sanitize_string(titulo, max_length=None)
    if len(titulo_clean) < 5:
        raise ValidationError("Título deve ter pelo menos 5 caracteres")
    if len(titulo_clean) > 100:
        raise ValidationError("Título muito longo (máximo 100 caracteres)")

    descricao_clean = sanitize_string(descricao, max_length=None)
    if len(descricao_clean) < 10:
        raise ValidationError("Descrição deve ter pelo menos 10 caracteres")
    if len(descricao_clean) > 2000:
        raise ValidationError("Descrição muito longa (máximo 2000 caracteres)")

    if tipo not in FEEDBACK_TYPES:
        raise ValidationError("Tipo de feedback inválido")

    pagina_clean = None
    if pagina:
        pagina_clean = sanitize_string(pagina) or None

    if not check_rate_limit(f"feedback_{email_clean}"):
        raise RateLimitError("Muitos feedbacks enviados. Aguarde antes de enviar outro.")

    secure_log(logger, "Creating feedback", {
        "email": email_clean,
        "tipo": tipo,
        "titulo_length": len(titulo_clean),
        "descricao_length": len(descricao_clean),
    })
    with backend_errors("Error creating feedback"), DBSession() as session:
        feedback = Feedback(
            usuario_email=email_clean,
            tipo=tipo,
            titulo=titulo_clean,
            descricao=descricao_clean,
            pagina=pagina_clean,
        )
        session.add(feedback)
        session.commit()
        secure_log(logger, "Feedback created", {"id": str(feedback.id)})
        return row_to_dict(feedback)
