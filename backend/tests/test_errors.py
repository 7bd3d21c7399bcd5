"""
Tests for mapping storage failures onto API errors.
"""

from sqlalchemy.exc import IntegrityError, NoResultFound

from storefront.errors import NotFound, PaymentAlreadyProcessed, map_storage_error


class PgDriverError(Exception):
    def __init__(self, message, sqlstate):
        super().__init__(message)
        self.sqlstate = sqlstate


def integrity_error(orig: Exception) -> IntegrityError:
    return IntegrityError("INSERT INTO orders ...", {}, orig)


def test_sqlite_foreign_key_failure_is_not_found():
    mapped = map_storage_error(integrity_error(Exception("FOREIGN KEY constraint failed")))

    assert isinstance(mapped, NotFound)
    assert mapped.status_code == 404


def test_postgres_foreign_key_violation_is_not_found():
    orig = PgDriverError('insert or update on table "orders" violates foreign key constraint', "23503")

    mapped = map_storage_error(integrity_error(orig))

    assert isinstance(mapped, NotFound)


def test_unique_violation_is_duplicate_payment():
    orig = PgDriverError('duplicate key value violates unique constraint "razorpay_payments_razorpay_payment_id_key"', "23505")

    mapped = map_storage_error(integrity_error(orig))

    assert isinstance(mapped, PaymentAlreadyProcessed)
    assert mapped.status_code == 400
    assert mapped.message == "Duplicate payment record"


def test_sqlite_unique_failure_is_duplicate_payment():
    orig = Exception("UNIQUE constraint failed: razorpay_payments.razorpay_payment_id")

    assert isinstance(map_storage_error(integrity_error(orig)), PaymentAlreadyProcessed)


def test_no_result_is_not_found():
    assert isinstance(map_storage_error(NoResultFound("No row was found")), NotFound)
