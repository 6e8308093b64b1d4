#!/usr/bin/env python3
"""
CLI for store maintenance

Commands:
    create-admin            - Create (or reset) a back-office admin user
    cancel-expired-orders   - Cancel unpaid orders past their payment window
    send-payment-reminders  - Email MercadoPago orders left unpaid
    sync-tracking           - Refresh carrier tracking for dispatched orders
    cleanup-webhooks        - Prune old webhook idempotency records
    run-maintenance         - All maintenance jobs above, in order

Usage:
    python cli.py create-admin admin@rastuci.com --name "Admin"
    python cli.py run-maintenance --json

The same jobs run over HTTP through GET /api/cron/orders.
"""

import json
import sys

import click


def get_app_context():
    """Get Flask app context for database access."""
    from app import create_app
    app = create_app()
    return app.app_context()


def _echo_result(result, output_json):
    if output_json:
        click.echo(json.dumps(result, indent=2, default=str))
        return
    for key, value in result.items():
        if isinstance(value, list):
            click.echo(f"  {key}: {len(value)}" + (f" ({', '.join(map(str, value))})" if value else ""))
        elif isinstance(value, dict):
            click.echo(f"  {key}:")
            for sub_key, sub_value in value.items():
                click.echo(f"    {sub_key}: {sub_value}")
        else:
            click.echo(f"  {key}: {value}")


@click.group()
@click.version_option(version="1.0.0", prog_name="store-cli")
def cli():
    """Store maintenance CLI."""
    pass


@cli.command("create-admin")
@click.argument("email")
@click.option("--name", default=None, help="Display name")
@click.password_option(help="Password (prompted when omitted)")
def create_admin(email, name, password):
    """Create a back-office admin, or reset the password of an existing one."""
    with get_app_context():
        from models.database import db
        from models.user import User

        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        created = user is None
        if created:
            user = User(email=email, role="admin")
            db.session.add(user)
        user.name = name or user.name
        user.role = "admin"
        user.is_active = True
        user.set_password(password)
        db.session.commit()

    click.secho(f"Admin {email} {'created' if created else 'updated'}", fg="green")


@cli.command("cancel-expired-orders")
@click.option("--batch-size", default=50, show_default=True, help="Maximum orders per run")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def cancel_expired_orders(batch_size, output_json):
    """Cancel PENDING orders whose expires_at has passed."""
    with get_app_context():
        from services.order_maintenance import cancel_expired_orders as job
        result = job(batch_size=batch_size)
    _echo_result(result, output_json)
    if result["failed"]:
        sys.exit(1)


@cli.command("send-payment-reminders")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def send_payment_reminders(output_json):
    """Email customers whose MercadoPago payment is still pending."""
    with get_app_context():
        from services.order_maintenance import send_payment_reminders as job
        result = job()
    _echo_result(result, output_json)


@cli.command("sync-tracking")
@click.option("--limit", default=50, show_default=True, help="Maximum orders per run")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def sync_tracking(limit, output_json):
    """Refresh carrier tracking; delivered shipments close their orders."""
    with get_app_context():
        from services.order_maintenance import sync_shipments
        result = sync_shipments(limit=limit)
    _echo_result(result, output_json)


@cli.command("cleanup-webhooks")
@click.option("--days", default=30, show_default=True, help="Retention in days")
def cleanup_webhooks(days):
    """Delete webhook idempotency records older than --days."""
    with get_app_context():
        from services.order_maintenance import cleanup_webhooks as job
        result = job(days=days)
    click.echo(f"Deleted {result['deleted']} webhook records")


@cli.command("run-maintenance")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def run_maintenance(output_json):
    """Run every maintenance job."""
    with get_app_context():
        from services.order_maintenance import run_all
        results = run_all()

    if output_json:
        click.echo(json.dumps(results, indent=2, default=str))
        return
    for job_name, result in results.items():
        click.secho(job_name, bold=True)
        _echo_result(result, False)


if __name__ == "__main__":
    cli()
