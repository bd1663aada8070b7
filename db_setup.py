# file that defines the database tables (Supabase Postgres) using SQLAlchemy ORM
# Table/column names match the hosted schema, so attribute names are Portuguese too.
from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# 1) Base class for all our database tables
class Base(DeclarativeBase):
    pass


# ──────────────────────────────────────────────────────────────
# CATALOG (reference data, read-only for the app)
# ──────────────────────────────────────────────────────────────

# 2) Courses, e.g. "Engenharia Civil" / CIV
class Course(Base):
    __tablename__ = "cursos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    nome: Mapped[str] = mapped_column(String, nullable=False)
    codigo: Mapped[str] = mapped_column(String, unique=True, nullable=False)  # matched uppercased

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    enfases: Mapped[list["Emphasis"]] = relationship(back_populates="curso")


# 3) Emphases (specializations) belong to exactly one course
class Emphasis(Base):
    __tablename__ = "enfases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    nome: Mapped[str] = mapped_column(String, nullable=False)
    codigo: Mapped[str] = mapped_column(String, nullable=False)  # e.g. EST, GEO
    curso_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("cursos.id"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    curso: Mapped[Course] = relationship(back_populates="enfases")


# 4) Disciplines (individual subjects)
class Discipline(Base):
    __tablename__ = "disciplinas"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    codigo: Mapped[str] = mapped_column(String, unique=True, nullable=False)  # e.g. IME01-00508
    nome: Mapped[str] = mapped_column(String, nullable=False)
    periodo: Mapped[str | None] = mapped_column(String, nullable=True)  # suggested term, "1º"
    carga_horaria: Mapped[int | None] = mapped_column(Integer, nullable=True)  # credit hours
    tipo: Mapped[str | None] = mapped_column(String, nullable=True)  # "básica" / "específica"
    # text[] on Postgres, JSON anywhere else (tests run on SQLite)
    pre_requisitos: Mapped[list[str] | None] = mapped_column(
        JSON().with_variant(ARRAY(String), "postgresql"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


# 5) Discipline <-> course association (one row per pair)
class DisciplineCourse(Base):
    __tablename__ = "disciplina_cursos"
    __table_args__ = (UniqueConstraint("disciplina_id", "curso_id", name="uq_disciplina_curso"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    disciplina_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("disciplinas.id"), nullable=False)
    curso_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("cursos.id"), nullable=False)
    periodo_sugerido: Mapped[str | None] = mapped_column(String, nullable=True)
    obrigatoria: Mapped[bool] = mapped_column(Boolean, default=True)

    disciplina: Mapped[Discipline] = relationship()
    curso: Mapped[Course] = relationship()


# 6) Discipline <-> emphasis association
class DisciplineEmphasis(Base):
    __tablename__ = "disciplina_enfases"
    __table_args__ = (UniqueConstraint("disciplina_id", "enfase_id", name="uq_disciplina_enfase"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    disciplina_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("disciplinas.id"), nullable=False)
    enfase_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("enfases.id"), nullable=False)
    periodo_sugerido: Mapped[str | None] = mapped_column(String, nullable=True)
    obrigatoria: Mapped[bool] = mapped_column(Boolean, default=True)

    disciplina: Mapped[Discipline] = relationship()
    enfase: Mapped[Emphasis] = relationship()


# ──────────────────────────────────────────────────────────────
# USER-GENERATED DATA (written by authenticated students)
# ──────────────────────────────────────────────────────────────

# 7) Professors. Names are NOT unique, users search before creating
class Professor(Base):
    __tablename__ = "professores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    nome: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


# 8) Which professor teaches which discipline. At most one row per pair
class ProfessorDiscipline(Base):
    __tablename__ = "professor_disciplinas"
    __table_args__ = (UniqueConstraint("professor_id", "disciplina_id", name="uq_professor_disciplina"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    professor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("professores.id"), nullable=False)
    disciplina_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("disciplinas.id"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    professor: Mapped[Professor] = relationship()
    disciplina: Mapped[Discipline] = relationship()


# 9) Ratings. One per (professor, discipline, user)
# usuario_id comes from Supabase Auth (auth.users.id)
class Rating(Base):
    __tablename__ = "avaliacoes"
    __table_args__ = (
        UniqueConstraint("professor_id", "disciplina_id", "usuario_id", name="uq_avaliacao_usuario"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    professor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("professores.id"), nullable=False)
    disciplina_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("disciplinas.id"), nullable=False)
    usuario_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    estrelas: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..5
    comentario: Mapped[str | None] = mapped_column(Text, nullable=True)  # <= 1000 chars

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    disciplina: Mapped[Discipline] = relationship()


# 10) Feedback / bug reports. Append-only
class Feedback(Base):
    __tablename__ = "feedbacks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    usuario_email: Mapped[str] = mapped_column(String, nullable=False)
    tipo: Mapped[str] = mapped_column(String, nullable=False)  # "erro", "sugestao", "bug"
    titulo: Mapped[str] = mapped_column(String, nullable=False)
    descricao: Mapped[str] = mapped_column(Text, nullable=False)
    pagina: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
