"""
Tests for the data access layer (database.py) against an in-memory SQLite.

Covers:
1. Configuration guard
2. Catalog reads (courses, emphases, disciplines)
3. Professor creation / linking (duplicate + rate limit)
4. Ratings (duplicate check, constraint violation, validation)
5. Feedback
6. Search and stats
"""

import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

import database
import db_connection
from db_connection import Session as DBSession
from db_setup import Professor, ProfessorDiscipline, Rating
from errors import (
    BackendError, ConfigurationError, DuplicateError, NotFoundError, RateLimitError, ValidationError,
)

USER_A = "6f1c2a7e-0b9d-4c1e-9a53-3f0e5d7b8a11"
USER_B = "a2d4e6f8-1b3c-4d5e-8f70-9a1b2c3d4e5f"


def _count(model) -> int:
    with DBSession() as session:
        return session.query(model).count()


# =============================================================================
# SECTION 1: Configuration guard
# =============================================================================

class TestConfiguration:

    def test_unconfigured_database_raises(self):
        """No engine -> ConfigurationError before touching anything."""
        with patch.object(db_connection, "engine", None):
            with pytest.raises(ConfigurationError):
                database.get_courses()

    def test_backend_failure_becomes_generic_error(self, db):
        """Raw SQLAlchemy errors are hidden behind BackendError."""
        with patch.object(database, "DBSession", side_effect=OperationalError("select", {}, Exception("boom"))):
            with pytest.raises(BackendError) as exc_info:
                database.get_courses()
        assert "boom" not in exc_info.value.message


# =============================================================================
# SECTION 2: Catalog
# =============================================================================

class TestCatalog:

    def test_courses_sorted_by_name(self, catalog):
        names = [c["nome"] for c in database.get_courses()]
        assert names == ["Engenharia Civil", "Engenharia Mecanica"]

    def test_course_by_code_is_case_insensitive(self, catalog):
        """Codes are matched uppercased."""
        course = database.get_course_by_code(" civ ")
        assert course["codigo"] == "CIV"
        assert course["id"] == catalog["civ"]

    def test_unknown_course_returns_none(self, catalog):
        assert database.get_course_by_code("XYZ") is None

    def test_empty_course_code_is_rejected(self, catalog):
        with pytest.raises(ValidationError):
            database.get_course_by_code("<>")

    def test_emphases_by_course(self, catalog):
        emphases = database.get_emphases_by_course(catalog["civ"])
        assert [e["codigo"] for e in emphases] == ["EST", "GEO"]

    def test_emphasis_by_code(self, catalog):
        emphasis = database.get_emphasis_by_code("civ", "est")
        assert emphasis["nome"] == "Estruturas"
        assert emphasis["cursos"] == {"codigo": "CIV"}

    def test_emphasis_of_another_course_not_found(self, catalog):
        assert database.get_emphasis_by_code("MEC", "EST") is None

    def test_basic_disciplines_ordered_by_period(self, catalog):
        """Ordered by periodo_sugerido and tagged 'básica'."""
        disciplines = database.get_basic_disciplines_for_course("civ")
        assert [d["codigo"] for d in disciplines] == ["MAT001", "MAT002"]
        assert all(d["tipo"] == "básica" for d in disciplines)
        assert disciplines[0]["total_professores"] == 0
        assert disciplines[0]["total_avaliacoes"] == 0

    def test_emphasis_disciplines(self, catalog):
        disciplines = database.get_emphasis_disciplines("CIV", "EST")
        assert len(disciplines) == 1
        assert disciplines[0]["codigo"] == "EST101"
        assert disciplines[0]["tipo"] == "específica"
        assert disciplines[0]["obrigatoria"] is False

    def test_discipline_by_code_or_id(self, catalog):
        """Code first, id as fallback."""
        assert database.get_discipline_by_code("mat001")["id"] == catalog["calculo"]
        assert database.get_discipline_by_code(catalog["calculo"])["codigo"] == "MAT001"
        assert database.get_discipline_by_code("NOPE") is None

    def test_discipline_details(self, catalog):
        details = database.get_discipline_details(catalog["calculo"])
        assert details["curso_codigo"] == "CIV"
        assert details["periodo_sugerido"] == "1º"
        assert details["total_professores"] == 0

    def test_discipline_details_bad_id(self, catalog):
        assert database.get_discipline_details("not-a-uuid") is None
        assert database.get_discipline_details(str(uuid.uuid4())) is None

    def test_mark_basic_disciplines(self, catalog):
        database.mark_basic_disciplines(["EST101"])
        assert database.get_discipline_by_code("EST101")["tipo"] == "básica"


# =============================================================================
# SECTION 3: Professors
# =============================================================================

class TestProfessors:

    def test_create_professor_without_email(self, db):
        """Name is kept, email stays empty."""
        professor = database.create_professor("Dr. Ana Silva")
        assert professor["nome"] == "Dr. Ana Silva"
        assert professor["email"] is None
        assert uuid.UUID(professor["id"])

    def test_create_professor_empty_name(self, db):
        """Name that is empty after trimming is a validation error."""
        with pytest.raises(ValidationError):
            database.create_professor("   ")
        assert _count(Professor) == 0

    def test_create_professor_short_name(self, db):
        with pytest.raises(ValidationError):
            database.create_professor("A")

    def test_create_professor_invalid_email(self, db):
        with pytest.raises(ValidationError, match="Email"):
            database.create_professor("Ana Silva", "not-an-email")

    def test_create_professor_sanitizes(self, db):
        professor = database.create_professor("  <b>Ana</b> Silva ", " ANA@UERJ.BR ")
        assert professor["nome"] == "bAna/b Silva"
        assert professor["email"] == "ana@uerj.br"

    def test_create_professor_rate_limited_by_name(self, db):
        """Same name 11 times in a minute -> throttled."""
        for _ in range(10):
            database.create_professor("Ana Silva")
        with pytest.raises(RateLimitError):
            database.create_professor("ana silva")
        assert _count(Professor) == 10

    def test_link_professor(self, catalog):
        professor = database.create_professor("Ana Silva")
        link = database.link_professor_to_discipline(professor["id"], catalog["calculo"])
        assert link["professor_id"] == professor["id"]
        assert link["disciplina_id"] == catalog["calculo"]

    def test_link_twice_is_duplicate(self, catalog):
        """Second link of the same pair is 'already associated', not a generic error."""
        professor = database.create_professor("Ana Silva")
        database.link_professor_to_discipline(professor["id"], catalog["calculo"])
        with pytest.raises(DuplicateError, match="já está associado"):
            database.link_professor_to_discipline(professor["id"], catalog["calculo"])
        assert _count(ProfessorDiscipline) == 1

    def test_link_race_hits_unique_constraint(self, catalog):
        """If the pre-check misses, the unique constraint still yields DuplicateError."""
        professor = database.create_professor("Ana Silva")
        database.link_professor_to_discipline(professor["id"], catalog["calculo"])

        with patch.object(database, "_find_link", return_value=None):
            with pytest.raises(DuplicateError):
                database.link_professor_to_discipline(professor["id"], catalog["calculo"])
        assert _count(ProfessorDiscipline) == 1

    def test_link_unknown_professor(self, catalog):
        with pytest.raises(NotFoundError, match="Professor"):
            database.link_professor_to_discipline(str(uuid.uuid4()), catalog["calculo"])
        assert _count(ProfessorDiscipline) == 0

    def test_link_unknown_discipline(self, catalog):
        professor = database.create_professor("Ana Silva")
        with pytest.raises(NotFoundError, match="Disciplina"):
            database.link_professor_to_discipline(professor["id"], str(uuid.uuid4()))
        assert _count(ProfessorDiscipline) == 0

    def test_link_invalid_ids(self, catalog):
        with pytest.raises(ValidationError, match="professor"):
            database.link_professor_to_discipline("123", catalog["calculo"])
        with pytest.raises(ValidationError, match="disciplina"):
            database.link_professor_to_discipline(str(uuid.uuid4()), "abc")

    def test_create_professor_for_discipline(self, catalog):
        professor = database.create_professor_for_discipline("Carlos Souza", catalog["calculo"])
        professors = database.get_professors_by_discipline(catalog["calculo"])
        assert [p["id"] for p in professors] == [professor["id"]]

    def test_create_professor_for_unknown_discipline(self, catalog):
        with pytest.raises(NotFoundError):
            database.create_professor_for_discipline("Carlos Souza", str(uuid.uuid4()))
        assert _count(Professor) == 0

    def test_failed_link_leaves_no_orphan_professor(self, catalog):
        """Professor insert is rolled back when the link insert fails."""
        with patch.object(database, "_insert_link", side_effect=OperationalError("insert", {}, Exception("down"))):
            with pytest.raises(BackendError):
                database.create_professor_for_discipline("Carlos Souza", catalog["calculo"])
        assert _count(Professor) == 0

    def test_professors_by_discipline_stats(self, catalog):
        """Stats are per professor across all disciplines, list sorted by name."""
        bruno = database.create_professor_for_discipline("Bruno Lima", catalog["calculo"])
        ana = database.create_professor_for_discipline("Ana Silva", catalog["calculo"])
        database.link_professor_to_discipline(ana["id"], catalog["algebra"])
        database.create_rating(ana["id"], catalog["calculo"], USER_A, 5)
        database.create_rating(ana["id"], catalog["algebra"], USER_A, 2)

        professors = database.get_professors_by_discipline(catalog["calculo"])
        assert [p["nome"] for p in professors] == ["Ana Silva", "Bruno Lima"]
        assert professors[0]["total_disciplinas"] == 2
        assert professors[0]["total_avaliacoes"] == 2
        assert professors[0]["media_avaliacoes"] == 3.5
        assert professors[1]["id"] == bruno["id"]
        assert professors[1]["media_avaliacoes"] == 0

    def test_search_professors(self, db):
        database.create_professor("Ana Silva")
        database.create_professor("Mariana Costa")
        database.create_professor("Bruno Lima")
        names = [p["nome"] for p in database.search_professors("ana")]
        assert names == ["Ana Silva", "Mariana Costa"]
        assert database.search_professors("a") == []

    def test_professor_profile(self, catalog):
        ana = database.create_professor_for_discipline("Ana Silva", catalog["calculo"])
        database.create_rating(ana["id"], catalog["calculo"], USER_A, 5, "Excelente")
        database.create_rating(ana["id"], catalog["calculo"], USER_B, 4)

        profile = database.get_professor_profile(ana["id"])
        assert profile["professor"]["nome"] == "Ana Silva"
        assert len(profile["avaliacoes"]) == 2
        assert profile["avaliacoes"][0]["disciplinas"] == {"nome": "Calculo I", "codigo": "MAT001"}
        assert profile["disciplinas"] == [{
            "id": catalog["calculo"],
            "nome": "Calculo I",
            "codigo": "MAT001",
            "total_avaliacoes": 2,
            "media_estrelas": 4.5,
        }]
        assert profile["stats"] == {"total_avaliacoes": 2, "media_estrelas": 4.5, "total_disciplinas": 1}

    def test_professor_profile_not_found(self, db):
        with pytest.raises(NotFoundError):
            database.get_professor_profile(str(uuid.uuid4()))


# =============================================================================
# SECTION 4: Ratings
# =============================================================================

class TestRatings:

    @pytest.fixture
    def professor(self, catalog):
        return database.create_professor_for_discipline("Ana Silva", catalog["calculo"])

    def test_create_rating(self, catalog, professor):
        rating = database.create_rating(professor["id"], catalog["calculo"], USER_A, 4, "Boa didática")
        assert rating["estrelas"] == 4
        assert rating["comentario"] == "Boa didática"
        assert rating["usuario_id"] == USER_A

    def test_second_rating_same_triple_is_duplicate(self, catalog, professor):
        """Same (professor, discipline, user) -> DuplicateError, no second row."""
        database.create_rating(professor["id"], catalog["calculo"], USER_A, 4)
        with pytest.raises(DuplicateError, match="já avaliou"):
            database.create_rating(professor["id"], catalog["calculo"], USER_A, 2)
        assert _count(Rating) == 1

    def test_other_user_can_rate(self, catalog, professor):
        """Different user on the same professor/discipline is fine."""
        database.create_rating(professor["id"], catalog["calculo"], USER_A, 4)
        database.create_rating(professor["id"], catalog["calculo"], USER_B, 3)
        assert _count(Rating) == 2

    def test_unique_constraint_is_duplicate(self, catalog, professor):
        """A race past the pre-check still reports DuplicateError."""
        database.create_rating(professor["id"], catalog["calculo"], USER_A, 4)
        with patch.object(database, "check_user_rating", return_value=False):
            with pytest.raises(DuplicateError):
                database.create_rating(professor["id"], catalog["calculo"], USER_A, 1)
        assert _count(Rating) == 1

    def test_check_user_rating(self, catalog, professor):
        assert database.check_user_rating(professor["id"], catalog["calculo"], USER_A) is False
        database.create_rating(professor["id"], catalog["calculo"], USER_A, 4)
        assert database.check_user_rating(professor["id"], catalog["calculo"], USER_A) is True

    def test_check_user_rating_bad_ids_is_false(self, catalog, professor):
        assert database.check_user_rating("x", catalog["calculo"], USER_A) is False

    @pytest.mark.parametrize("stars", [0, 6, 3.5, "3", None])
    def test_invalid_stars(self, catalog, professor, stars):
        with pytest.raises(ValidationError, match="estrelas"):
            database.create_rating(professor["id"], catalog["calculo"], USER_A, stars)

    def test_invalid_user_id(self, catalog, professor):
        with pytest.raises(ValidationError, match="usuário"):
            database.create_rating(professor["id"], catalog["calculo"], "anonymous", 3)

    def test_comment_too_long(self, catalog, professor):
        with pytest.raises(ValidationError, match="1000"):
            database.create_rating(professor["id"], catalog["calculo"], USER_A, 3, "x" * 1001)

    def test_comment_sanitized_and_blank_dropped(self, catalog, professor):
        rating = database.create_rating(professor["id"], catalog["calculo"], USER_A, 3, "  <>  ")
        assert rating["comentario"] is None

    def test_rating_rate_limited_per_user(self, catalog):
        """11th rating in a minute from one user is refused."""
        professors = [database.create_professor(f"Professor {i:02d}") for i in range(11)]
        for p in professors[:10]:
            database.create_rating(p["id"], catalog["calculo"], USER_A, 5)
        with pytest.raises(RateLimitError):
            database.create_rating(professors[10]["id"], catalog["calculo"], USER_A, 5)


# =============================================================================
# SECTION 5: Feedback
# =============================================================================

class TestFeedback:

    def test_create_feedback(self, db):
        feedback = database.create_feedback(
            "Aluno@Graduacao.uerj.br", "bug", "Botão quebrado", "O botão de avaliar não responde", "/disciplina/MAT001"
        )
        assert feedback["usuario_email"] == "aluno@graduacao.uerj.br"
        assert feedback["tipo"] == "bug"
        assert feedback["pagina"] == "/disciplina/MAT001"

    @pytest.mark.parametrize("kwargs, message", [
        ({"usuario_email": "nope"}, "Email"),
        ({"titulo": "Oi"}, "Título"),
        ({"titulo": "x" * 101}, "Título muito longo"),
        ({"descricao": "curta"}, "Descrição"),
        ({"descricao": "x" * 2001}, "Descrição muito longa"),
        ({"tipo": "elogio"}, "Tipo"),
    ])
    def test_feedback_validation(self, db, kwargs, message):
        args = {
            "usuario_email": "aluno@graduacao.uerj.br",
            "tipo": "sugestao",
            "titulo": "Sugestão boa",
            "descricao": "Seria legal ter filtros por período",
        }
        args.update(kwargs)
        with pytest.raises(ValidationError, match=message):
            database.create_feedback(**args)

    def test_feedback_rate_limited_per_email(self, db):
        for _ in range(10):
            database.create_feedback("aluno@graduacao.uerj.br", "erro", "Erro na página", "Algo deu errado aqui")
        with pytest.raises(RateLimitError):
            database.create_feedback("aluno@graduacao.uerj.br", "erro", "Erro na página", "Algo deu errado aqui")


# =============================================================================
# SECTION 6: Search and stats
# =============================================================================

class TestSearchAndStats:

    def test_short_term_returns_nothing(self, catalog):
        assert database.search_disciplines_and_professors("ca") == []

    def test_search_disciplines_by_code_and_name(self, catalog):
        ana = database.create_professor_for_discipline("Ana Silva", catalog["calculo"])
        results = database.search_disciplines_and_professors("mat00")
        assert {r["codigo"] for r in results if r["tipo"] == "disciplina"} == {"MAT001", "MAT002"}

        by_name = database.search_disciplines_and_professors("calculo")
        assert by_name[0]["professor"] == "Ana Silva"
        assert by_name[0]["id"] == catalog["calculo"]
        assert ana["nome"] == "Ana Silva"

    def test_search_professors_with_average(self, catalog):
        ana = database.create_professor_for_discipline("Ana Silva", catalog["calculo"])
        database.create_rating(ana["id"], catalog["calculo"], USER_A, 4)
        database.create_rating(ana["id"], catalog["calculo"], USER_B, 5)

        results = [r for r in database.search_disciplines_and_professors("silva") if r["tipo"] == "professor"]
        assert results == [{
            "tipo": "professor",
            "id": ana["id"],
            "nome": "Ana Silva",
            "email": None,
            "disciplinas": ["Calculo I"],
            "avaliacao": 4.5,
        }]

    def test_general_stats(self, catalog):
        ana = database.create_professor_for_discipline("Ana Silva", catalog["calculo"])
        database.create_rating(ana["id"], catalog["calculo"], USER_A, 4)
        assert database.get_general_stats() == {
            "total_cursos": 2,
            "total_disciplinas": 3,
            "total_professores": 1,
            "total_avaliacoes": 1,
        }
