# Overview: Flask CLI commands for bootstrap and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Use: python -m flask <command> [options]
#
# - python -m flask init-db [--drop --yes]
#   Create all tables (optionally dropping them first; deletes all data).
# - python -m flask seed-demo
#   Create a demo business with tax rules, a small catalog and one stock item.
# - python -m flask expire-reservations [--business-id 1]
#   Mark Booked reservations whose end has passed as Expired.

from datetime import datetime

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import BackofficeError
from .models import Business
from .permissions import ROLE_SUPER_ADMIN, ActorContext
from .services import business_service, catalog_service, inventory_service, tax_service
from .services.reservation_service import expire_overdue_reservations


@click.command('init-db')
@click.option('--drop', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation when dropping')
@with_appcontext
def init_db(drop, yes):
    """Create database tables (use `flask db upgrade` for migrated deployments)."""
    if drop:
        if not yes:
            click.confirm("This will DELETE ALL DATA. Continue?", abort=True)
        db.drop_all()
        click.echo("PASS Dropped all tables")
    db.create_all()
    click.echo("PASS Created all tables")


@click.command('seed-demo')
@click.option('--name', default='Demo Cafe', help='Business name')
@click.option('--country', default='LT', help='Two-letter country code')
@click.option('--currency', default='EUR', help='Business currency')
@with_appcontext
def seed_demo(name, country, currency):
    """
    Seed a demo business.

    Creates:
    - Business (skipped if one with the same name exists)
    - Tax rules: Food 20%, Service 21% for the country
    - Catalog: Espresso (with Double option, tracked stock 40), Haircut (service)
    """
    existing = db.session.query(Business).filter_by(name=name).first()
    if existing:
        click.echo(f"SKIP Business already exists: {existing.name} (ID: {existing.id})")
        return

    admin = ActorContext(user_id=None, role=ROLE_SUPER_ADMIN)
    valid_from = datetime(2000, 1, 1)

    try:
        business = business_service.create_business(name, country, currency)
        click.echo(f"PASS Created business: {business.name} (ID: {business.id})")

        for tax_class, rate in (("Food", "20"), ("Service", "21")):
            rule = tax_service.create_tax_rule(
                admin,
                country_code=country,
                tax_class=tax_class,
                rate_percent=rate,
                valid_from=valid_from,
            )
            click.echo(f"PASS Tax rule {rule.country_code}/{rule.tax_class}: {rate}%")

        espresso = catalog_service.create_catalog_item(
            admin,
            business_id=business.id,
            name="Espresso",
            code="ESP",
            base_price="3.50",
            tax_class="Food",
        )
        catalog_service.add_option(admin, espresso.id, "Single", "0")
        catalog_service.add_option(admin, espresso.id, "Double", "1.00")
        stock = inventory_service.create_stock_item(
            admin, espresso.id, unit="pcs", initial_qty="40", average_unit_cost="0.80"
        )
        click.echo(f"PASS Catalog item {espresso.code} with stock item {stock.id} (qty 40)")

        haircut = catalog_service.create_catalog_item(
            admin,
            business_id=business.id,
            name="Haircut",
            code="CUT",
            base_price="25.00",
            tax_class="Service",
            item_type=catalog_service.ITEM_TYPE_SERVICE,
        )
        click.echo(f"PASS Catalog item {haircut.code}")
    except BackofficeError as e:
        raise click.ClickException(f"Seeding failed: {e.message}")

    click.echo("DONE Demo data ready")


@click.command('expire-reservations')
@click.option('--business-id', type=int, default=None, help='Limit to one business')
@with_appcontext
def expire_reservations(business_id):
    """Mark overdue Booked reservations as Expired."""
    count = expire_overdue_reservations(business_id=business_id)
    click.echo(f"PASS Expired {count} reservation(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(init_db)
    app.cli.add_command(seed_demo)
    app.cli.add_command(expire_reservations)
