import asyncio
import json

import typer
from sqlalchemy.orm import Session
from exocall.core.database import SessionLocal
from exocall.core.security import hash_password
from exocall.models import User
from exocall.tasks import run_bulk_sync, run_exophone_sync, run_heartbeat

app = typer.Typer()


@app.command()
def create_admin(username: str = "admin", password: str = "admin"):
    db: Session = SessionLocal()
    try:
        existing = db.query(User).filter(User.username == username).first()
        if existing:
            typer.echo("Admin already exists")
            return
        user = User(
            username=username,
            hashed_password=hash_password(password),
            role="ADMIN",
        )
        db.add(user)
        db.commit()
        typer.echo("Admin created")
    finally:
        db.close()


@app.command()
def heartbeat():
    """Record one Exophone health check."""
    typer.echo(asyncio.run(run_heartbeat(manual=True)))


@app.command()
def bulk_sync():
    """Reconcile call details since the last successful sync."""
    typer.echo(json.dumps(asyncio.run(run_bulk_sync(manual=True))))


@app.command()
def sync_exophones():
    """Refresh the phone-number directory from Exotel."""
    typer.echo(f"{asyncio.run(run_exophone_sync())} ExoPhones synced")


if __name__ == "__main__":
    app()
