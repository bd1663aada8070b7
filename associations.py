# associations.py
# Admin helpers to attach disciplines to courses (one row per discipline/course pair).
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import _is_unique_violation, backend_errors, require_configured
from db_connection import Session as DBSession
from db_setup import Course, Discipline, DisciplineCourse
from errors import NotFoundError
from logging_utils import secure_log
from validation import sanitize_string

logger = logging.getLogger(__name__)


def _find_ids(session, disciplina_codigo: str, curso_codigo: str):
    """Resolve both codes to ids or raise NotFoundError."""
    discipline = (
        session.query(Discipline)
        .filter(Discipline.codigo == sanitize_string(disciplina_codigo).upper())
        .first()
    )
    if discipline is None:
        raise NotFoundError(f"Disciplina {disciplina_codigo} não encontrada")

    course = session.query(Course).filter(Course.codigo == sanitize_string(curso_codigo).upper()).first()
    if course is None:
        raise NotFoundError(f"Curso {curso_codigo} não encontrado")

    return discipline.id, course.id


def _find_association(session, disciplina_id, curso_id):
    return (
        session.query(DisciplineCourse)
        .filter(DisciplineCourse.disciplina_id == disciplina_id, DisciplineCourse.curso_id == curso_id)
        .first()
    )


def associate_discipline_course(
    disciplina_codigo: str,
    curso_codigo: str,
    periodo_sugerido: str | None = None,
    obrigatoria: bool = True,
) -> dict:
    """Upsert: re-associating an existing pair just updates periodo_sugerido/obrigatoria."""
    require_configured()
    with backend_errors("Error associating discipline to course"), DBSession() as session:
        disciplina_id, curso_id = _find_ids(session, disciplina_codigo, curso_codigo)

        association = _find_association(session, disciplina_id, curso_id)
        if association is None:
            association = DisciplineCourse(disciplina_id=disciplina_id, curso_id=curso_id)
            session.add(association)
        association.periodo_sugerido = periodo_sugerido
        association.obrigatoria = obrigatoria

        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if not _is_unique_violation(e):
                raise
            # Inserted concurrently: update that row instead
            association = _find_association(session, disciplina_id, curso_id)
            if association is None:
                raise
            association.periodo_sugerido = periodo_sugerido
            association.obrigatoria = obrigatoria
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise

        secure_log(logger, "Discipline associated to course",
                   {"disciplina": disciplina_codigo, "curso": curso_codigo})
        return {
            "disciplina_id": str(disciplina_id),
            "curso_id": str(curso_id),
            "periodo_sugerido": association.periodo_sugerido,
            "obrigatoria": association.obrigatoria,
        }


def associate_discipline_courses(
    disciplina_codigo: str,
    cursos_codigos: list[str],
    periodo_sugerido: str | None = None,
    obrigatoria: bool = True,
) -> list[dict]:
    """Same discipline into several courses, one at a time (stops at the first failure)."""
    return [
        associate_discipline_course(disciplina_codigo, curso_codigo, periodo_sugerido, obrigatoria)
        for curso_codigo in cursos_codigos
    ]


def remove_discipline_course(disciplina_codigo: str, curso_codigo: str) -> bool:
    """Delete the association. Returns False if there was nothing to delete."""
    require_configured()
    with backend_errors("Error removing discipline from course"), DBSession() as session:
        disciplina_id, curso_id = _find_ids(session, disciplina_codigo, curso_codigo)
        deleted = (
            session.query(DisciplineCourse)
            .filter(DisciplineCourse.disciplina_id == disciplina_id, DisciplineCourse.curso_id == curso_id)
            .delete(synchronize_session=False)
        )
        session.commit()
        return deleted > 0


def list_courses_for_discipline(disciplina_codigo: str) -> list[dict]:
    require_configured()
    with backend_errors("Error listing courses for discipline"), DBSession() as session:
        rows = (
            session.query(DisciplineCourse, Course, Discipline)
            .join(Course, DisciplineCourse.curso_id == Course.id)
            .join(Discipline, DisciplineCourse.disciplina_id == Discipline.id)
            .filter(Discipline.codigo == sanitize_string(disciplina_codigo).upper())
            .order_by(Course.nome)
            .all()
        )
        return [
            {
                "periodo_sugerido": assoc.periodo_sugerido,
                "obrigatoria": assoc.obrigatoria,
                "cursos": {"nome": course.nome, "codigo": course.codigo},
                "disciplinas": {"nome": discipline.nome, "codigo": discipline.codigo},
            }
            for assoc, course, discipline in rows
        ]


def list_disciplines_for_course(curso_codigo: str) -> list[dict]:
    require_configured()
    with backend_errors("Error listing disciplines for course"), DBSession() as session:
        rows = (
            session.query(DisciplineCourse, Discipline, Course)
            .join(Discipline, DisciplineCourse.disciplina_id == Discipline.id)
            .join(Course, DisciplineCourse.curso_id == Course.id)
            .filter(Course.codigo == sanitize_string(curso_codigo).upper())
            .order_by(DisciplineCourse.periodo_sugerido)
            .all()
        )
        return [
            {
                "periodo_sugerido": assoc.periodo_sugerido,
                "obrigatoria": assoc.obrigatoria,
                "disciplinas": {
                    "nome": discipline.nome,
                    "codigo": discipline.codigo,
                    "tipo": discipline.tipo,
                    "carga_horaria": discipline.carga_horaria,
                },
                "cursos": {"nome": course.nome, "codigo": course.codigo},
            }
            for assoc, discipline, course in rows
        ]
