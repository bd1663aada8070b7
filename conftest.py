"""Shared fixtures: fake Supabase settings and an in-memory SQLite database."""
import os

# Must be set before config / server are imported
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("APP_URL", "http://localhost:3000")
os.environ.setdefault("APP_ENV", "development")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import db_connection
from config import get_settings
from db_connection import Session as DBSession
from db_setup import (
    Base, Course, Discipline, DisciplineCourse, DisciplineEmphasis, Emphasis,
)
from rate_limiter import limiter


@pytest.fixture(autouse=True)
def fresh_state():
    """Every test starts with an empty rate limiter and re-read settings."""
    limiter.reset()
    get_settings.cache_clear()
    yield
    limiter.reset()
    get_settings.cache_clear()


@pytest.fixture
def db():
    """Bind the Session factory to a throwaway SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},  # TestClient runs routes in other threads
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    previous = db_connection.engine
    db_connection.bind_engine(engine)
    yield engine
    db_connection.bind_engine(previous)
    engine.dispose()


@pytest.fixture
def catalog(db):
    """Civil engineering with one basic and one emphasis-specific discipline."""
    with DBSession() as session:
        civ = Course(nome="Engenharia Civil", codigo="CIV")
        mec = Course(nome="Engenharia Mecanica", codigo="MEC")
        session.add_all([civ, mec])
        session.flush()

        est = Emphasis(nome="Estruturas", codigo="EST", curso_id=civ.id)
        geo = Emphasis(nome="Geotecnia", codigo="GEO", curso_id=civ.id)
        session.add_all([est, geo])
        session.flush()

        calculo = Discipline(codigo="MAT001", nome="Calculo I", periodo="1º", carga_horaria=75, tipo="básica")
        algebra = Discipline(codigo="MAT002", nome="Algebra Linear", periodo="2º", carga_horaria=60, tipo="básica")
        concreto = Discipline(codigo="EST101", nome="Concreto Armado", periodo="6º", carga_horaria=90, tipo="específica")
        session.add_all([calculo, algebra, concreto])
        session.flush()

        session.add_all([
            DisciplineCourse(disciplina_id=algebra.id, curso_id=civ.id, periodo_sugerido="2º", obrigatoria=True),
            DisciplineCourse(disciplina_id=calculo.id, curso_id=civ.id, periodo_sugerido="1º", obrigatoria=True),
            DisciplineEmphasis(disciplina_id=concreto.id, enfase_id=est.id, periodo_sugerido="6º", obrigatoria=False),
        ])
        session.commit()

        return {
            "civ": str(civ.id),
            "mec": str(mec.id),
            "est": str(est.id),
            "calculo": str(calculo.id),
            "algebra": str(algebra.id),
            "concreto": str(concreto.id),
        }
