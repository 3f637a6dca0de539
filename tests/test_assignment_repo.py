"""AssignmentRepository against a real (SQLite) unique constraint."""

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.orm.assignment import AssignmentORM
from app.models.schemas.assignment import Identity
from app.models.schemas.experiment import ExperimentCreateModel
from app.repositories.assignment_repo import AssignmentRepository
from app.repositories.experiment_repo import ExperimentRepository


@pytest.fixture
def experiment(db, make_payload):
    return ExperimentRepository(db).create_experiment(
        ExperimentCreateModel(**make_payload())
    )


def test_variants_keep_submission_order(experiment):
    assert [v.variant_name for v in experiment.variants] == ["control", "anchor"]
    assert [v.position for v in experiment.variants] == [0, 1]


def test_insert_then_read(db, experiment):
    repo = AssignmentRepository(db)
    control = experiment.variants[0]

    row, created = repo.insert_if_absent(
        experiment.experiment_id, control.variant_id, Identity(user_id="u1")
    )

    assert created
    fetched = repo.get_assignment(experiment.experiment_id, Identity(user_id="u1"))
    assert fetched.assignment_id == row.assignment_id
    assert fetched.anon_id is None


def test_duplicate_insert_returns_first_row(db, session_factory, experiment):
    control, anchor = experiment.variants
    identity = Identity(anon_id="visitor-1")

    # A second session plays the request that won the race
    other = session_factory()
    try:
        winner, created = AssignmentRepository(other).insert_if_absent(
            experiment.experiment_id, anchor.variant_id, identity
        )
        assert created
        winner_id = winner.assignment_id
    finally:
        other.close()

    row, created = AssignmentRepository(db).insert_if_absent(
        experiment.experiment_id, control.variant_id, identity
    )

    assert not created
    assert row.assignment_id == winner_id
    assert row.variant_id == anchor.variant_id
    assert db.query(AssignmentORM).count() == 1


def test_user_and_anon_with_same_value_do_not_collide(db, experiment):
    repo = AssignmentRepository(db)
    variant_id = experiment.variants[0].variant_id

    _, created_user = repo.insert_if_absent(experiment.experiment_id, variant_id, Identity(user_id="x"))
    _, created_anon = repo.insert_if_absent(experiment.experiment_id, variant_id, Identity(anon_id="x"))

    assert created_user and created_anon
    assert len(repo.get_assignments_for_experiment(experiment.experiment_id)) == 2


def test_integrity_error_without_existing_row_is_reraised(db, experiment):
    repo = AssignmentRepository(db)

    # Missing variant violates NOT NULL; there is no winning row to fall back to
    with pytest.raises(IntegrityError):
        repo.insert_if_absent(experiment.experiment_id, None, Identity(user_id="u1"))

    assert db.query(AssignmentORM).count() == 0


def test_rows_repr_their_columns(db, experiment):
    row, _ = AssignmentRepository(db).insert_if_absent(
        experiment.experiment_id, experiment.variants[0].variant_id, Identity(anon_id="v9")
    )

    text = repr(row)
    assert text.startswith("AssignmentORM(")
    assert f"assignment_id={row.assignment_id!r}" in text
    assert "anon_id='v9'" in text
    assert not hasattr(row, "to_dict")
