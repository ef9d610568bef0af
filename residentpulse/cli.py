import json
import click
from flask import current_app
from flask.cli import with_appcontext
from residentpulse.extensions import db
from residentpulse.models import Client, ClientAdmin, Subscription
from residentpulse.services.errors import ServiceError
from residentpulse.services.insights import regenerate_insights
from residentpulse.services.scheduler import DailyScheduler

@click.group()
def bootstrap():
    """Bootstrap helpers."""

@bootstrap.command("client")
@click.option("--company-name", required=True)
@click.option("--admin-email", required=True)
@click.option("--cadence", type=click.Choice(["2", "4"]), default="2")
@click.option("--member-limit", type=int, default=None, help="Omit for unlimited")
@with_appcontext
def bootstrap_client(company_name, admin_email, cadence, member_limit):
    # fail fast if admin exists
    if db.session.query(ClientAdmin).filter_by(email=admin_email.lower()).count():
        raise click.ClickException("Admin already exists")

    client = Client(company_name=company_name, status="active")
    db.session.add(client)
    db.session.flush()

    db.session.add(ClientAdmin(client_id=client.id, email=admin_email.lower()))
    db.session.add(Subscription(
        client_id=client.id,
        status="active",
        survey_rounds_per_year=int(cadence),
        survey_cadence=int(cadence),
        member_limit=member_limit,
    ))
    db.session.commit()

    click.echo(f"Bootstrap complete: client_id={client.id} admin_email={admin_email.lower()}")

@click.group()
def rounds():
    """Survey round operations."""

@rounds.command("tick")
@with_appcontext
def rounds_tick():
    """Run the daily stages once (for an external cron)."""
    report = DailyScheduler(current_app._get_current_object()).tick()
    click.echo(json.dumps(report, default=str, indent=2))
    if not all(stage["ok"] for stage in report.values()):
        raise click.ClickException("One or more scheduler stages failed")

@rounds.command("scheduler")
@with_appcontext
def rounds_scheduler():
    """Long-running loop that ticks daily at SCHEDULER_HOUR_UTC."""
    app = current_app._get_current_object()
    click.echo(f"Survey round scheduler started (daily at {app.config.get('SCHEDULER_HOUR_UTC', 9):02d}:00 UTC)")
    DailyScheduler(app).run_forever()

@rounds.command("regenerate-insights")
@click.option("--client-id", type=int, required=True)
@click.option("--round-id", type=int, required=True)
@with_appcontext
def rounds_regenerate_insights(client_id, round_id):
    try:
        payload = regenerate_insights(client_id, round_id)
    except ServiceError as e:
        raise click.ClickException(e.message)
    if payload is None:
        click.echo("No completed sessions with summaries; nothing generated")
        return
    click.echo(f"Insights regenerated: round_id={round_id} responses={payload['response_count']} nps={payload['nps_score']}")

def register_cli(app):
    app.cli.add_command(bootstrap)
    app.cli.add_command(rounds)
