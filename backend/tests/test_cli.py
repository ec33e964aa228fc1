"""
Tests for the Flask CLI commands and the user mirror service behind them.
"""

from datetime import date

import pytest

from orderledger.errors import ValidationError
from orderledger.models import AccessLevel, UserModuleAccess
from orderledger.services import ledger_service, user_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestUserService:
    def test_grant_is_upsert(self, db_session):
        user = user_service.create_user(username="ravi", full_name="Ravi K")
        user_service.grant_module_access(user_id=user.id, module_name="sales", access_level="read-only")
        user_service.grant_module_access(user_id=user.id, module_name="sales", access_level="admin")

        grants = db_session.query(UserModuleAccess).filter_by(user_id=user.id).all()
        assert [(g.module_name, g.access_level) for g in grants] == [("sales", AccessLevel.ADMIN)]

    def test_duplicate_username_rejected(self, db_session):
        user_service.create_user(username="ravi")
        with pytest.raises(ValidationError):
            user_service.create_user(username="ravi")

    def test_unknown_access_level_rejected(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            user_service.grant_module_access(user_id=admin_user.id, module_name="sales", access_level="owner")


class TestCommands:
    def test_users_create_and_list(self, runner, db_session):
        result = runner.invoke(args=[
            "users", "create", "--username", "meera", "--full-name", "Meera S",
            "--access", "sales=read-write", "--access", "operations=read-only",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created user meera" in result.output

        result = runner.invoke(args=["users", "list"])
        assert "meera" in result.output
        assert "sales=read-write" in result.output

    def test_users_create_malformed_access(self, runner, db_session):
        result = runner.invoke(args=["users", "create", "--username", "meera", "--access", "sales"])
        assert result.exit_code != 0

    def test_inventory_balance(self, runner, db_session, stock_item):
        ledger_service.record_intake(stock_item_id=stock_item.id, quantity=7, effective_date=date(2026, 6, 1))

        result = runner.invoke(args=["inventory", "balance", str(stock_item.id), "--as-of", "2026-06-01"])

        assert result.exit_code == 0, result.output
        assert "7.000 kg" in result.output

    def test_order_audit_unknown_order(self, runner, db_session):
        result = runner.invoke(args=["orders", "audit", "777"])
        assert result.exit_code == 1

    def test_permanently_locked_empty(self, runner, db_session):
        result = runner.invoke(args=["orders", "permanently-locked"])
        assert "No permanently locked orders." in result.output
