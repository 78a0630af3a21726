# Overview: Flask CLI command group for bootstrap and ledger inspection.

# backend/clubledger/cli.py
# Commands (run from the backend directory, FLASK_APP=clubledger):
# - flask ledger init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - flask ledger seed
#   Idempotently create a small demo catalog and two customers.
# - flask ledger verify-stock
#   Compare every article's stock with the sum of its movements; exit 1 on mismatch.
# - flask ledger highscore --period DAILY --mode AMOUNT
#   Print the current leaderboard.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Article, Customer
from .services import catalog_service, customer_service, highscore_service, stock_service

DEMO_ARTICLES = (
    # name, category, price, initial stock, min stock, unit, purchase unit, units per purchase
    ("Cola", "Soft drinks", "1.00", "48", "12", "bottle", "crate", "24"),
    ("Water", "Soft drinks", "0.80", "24", "12", "bottle", "crate", "12"),
    ("Beer", "Beer", "1.50", "40", "20", "bottle", "crate", "20"),
    ("Pretzel", "Snacks", "0.50", "30", "10", "piece", None, None),
)

DEMO_CUSTOMERS = (("Alex Example", "Alex"), ("Sam Sample", "Sam"))


@click.group("ledger")
def ledger_group():
    """Ledger bootstrap and inspection commands."""


@ledger_group.command("init-db")
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("✅ Database tables created")


@ledger_group.command("seed")
@with_appcontext
def seed():
    """Create demo articles and customers (skips existing names)."""
    created = 0
    for name, category, price, stock, min_stock, unit, purchase_unit, per_purchase in DEMO_ARTICLES:
        if db.session.query(Article.id).filter_by(name=name).first():
            continue
        catalog_service.create_article(
            name=name,
            category=category,
            price=price,
            initial_stock=stock,
            min_stock=min_stock,
            unit=unit,
            purchase_unit=purchase_unit,
            units_per_purchase=per_purchase,
        )
        created += 1
    for name, nickname in DEMO_CUSTOMERS:
        if db.session.query(Customer.id).filter_by(name=name).first():
            continue
        customer_service.create_customer(name, nickname)
        created += 1
    click.echo(f"✅ Seeded {created} records")


@ledger_group.command("verify-stock")
@with_appcontext
def verify_stock():
    """Exit with status 1 when any article's stock differs from its movement log."""
    mismatches = stock_service.verify_stock_ledger()
    if not mismatches:
        click.echo("✅ Stock ledger consistent")
        return
    for row in mismatches:
        click.echo(
            f"❌ Article {row['article_id']} ({row['name']}): "
            f"stock {row['stock']} != movements {row['movement_sum']}"
        )
    raise SystemExit(1)


@ledger_group.command("highscore")
@click.option("--period", type=click.Choice(highscore_service.PERIOD_TYPES), default="DAILY")
@click.option("--mode", type=click.Choice(("AMOUNT", "COUNT")), default="AMOUNT")
@with_appcontext
def show_highscore(period, mode):
    """Print the current leaderboard."""
    board = highscore_service.get_highscore(period, mode)
    click.echo(f"{period} / {mode} since {board['start_date'].isoformat(sep=' ')} UTC")
    if not board["entries"]:
        click.echo("No entries yet")
        return
    for entry in board["entries"]:
        label = entry["customer_nickname"] or entry["customer_name"]
        click.echo(f"{entry['rank']:>3}. {label:<24} {entry['score']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
