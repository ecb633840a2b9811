from typer.testing import CliRunner

from exocall.cli import app
from exocall.core.security import verify_password
from exocall.models import User

runner = CliRunner()


def test_create_admin_is_idempotent(db):
    result = runner.invoke(app, ["create-admin", "--username", "cliadmin", "--password", "secretpass"])
    assert result.exit_code == 0
    assert "Admin created" in result.output

    result = runner.invoke(app, ["create-admin", "--username", "cliadmin", "--password", "other"])
    assert "Admin already exists" in result.output

    user = db.query(User).filter(User.username == "cliadmin").one()
    assert user.role == "ADMIN"
    assert verify_password("secretpass", user.hashed_password)
