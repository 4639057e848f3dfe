"""
CLI command tests.
"""

from coachledger.extensions import db
from coachledger.models import Coach


def test_coaches_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["coaches", "create", "--name", "Deniz", "--branch", "Moda"])
    assert result.exit_code == 0
    assert "PASS Created coach: Deniz" in result.output

    result = runner.invoke(args=["coaches", "list"])
    assert result.exit_code == 0
    assert "Deniz" in result.output
    assert "Moda" in result.output


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()
    for _ in range(2):
        result = runner.invoke(args=["system", "init", "--coach-name", "Deniz"])
        assert result.exit_code == 0
    assert db.session.query(Coach).filter_by(name="Deniz").count() == 1


def test_aggregates_verify_and_rebuild(app, coach, make_member):
    make_member()
    coach_row = db.session.get(Coach, coach.id)
    coach_row.company_cut_total_cents = 999
    db.session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["aggregates", "verify"])
    assert result.exit_code == 1
    assert "drift" in result.output

    result = runner.invoke(args=["aggregates", "rebuild", "--yes"])
    assert result.exit_code == 0
    assert db.session.get(Coach, coach.id).company_cut_total_cents == 400

    result = runner.invoke(args=["aggregates", "verify", "--coach-id", str(coach.id)])
    assert result.exit_code == 0


def test_aggregates_verify_unknown_coach(app, db_session):
    result = app.test_cli_runner().invoke(args=["aggregates", "verify", "--coach-id", "999"])
    assert result.exit_code == 1
    assert "not found" in result.output
