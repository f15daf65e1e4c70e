"""
Flask CLI commands.

Commands:
- flask init-db: create all tables
- flask create-tenant: create a tenant with its OWNER user
- flask verify-ledger: check the movement chains of a tenant's products
"""
import re
import sys

import click

from stockledger.database import create_all, get_session
from stockledger.models import AppUser, Product, Tenant, UserTenant, UserRole
from stockledger.services.ledger_service import verify_chain

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table of the schema."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-tenant')
    @click.option('--slug', required=True, help='URL-safe tenant identifier')
    @click.option('--name', required=True, help='Tenant display name')
    @click.option('--email', required=True, help='Owner email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
    @click.option('--full-name', default=None, help='Owner full name')
    def create_tenant(slug, name, email, password, full_name):
        """Create a tenant and its OWNER user (reused when the email exists)."""
        email = email.strip().lower()
        if not SLUG_PATTERN.match(slug):
            raise click.BadParameter('use lowercase letters, digits and dashes', param_hint='--slug')
        if not EMAIL_PATTERN.match(email):
            raise click.BadParameter('invalid email address', param_hint='--email')
        if len(password) < 6:
            raise click.BadParameter('must be at least 6 characters', param_hint='--password')

        db_session = get_session()
        if db_session.query(Tenant).filter_by(slug=slug).first():
            raise click.ClickException(f"A tenant with slug '{slug}' already exists")

        try:
            tenant = Tenant(slug=slug, name=name, active=True)
            db_session.add(tenant)

            user = db_session.query(AppUser).filter_by(email=email).first()
            if user is None:
                user = AppUser(email=email, full_name=full_name, active=True)
                user.set_password(password)
                db_session.add(user)
            db_session.flush()

            db_session.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=UserRole.OWNER.value, active=True))
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

        click.echo(click.style(f'Tenant created: {tenant.name} (id {tenant.id})', fg='green'))
        click.echo(f'   Owner: {user.email} (id {user.id})')

    @app.cli.command('verify-ledger')
    @click.option('--tenant-id', type=int, required=True, help='Tenant to check')
    @click.option('--product-id', type=int, default=None, help='Only this product')
    def verify_ledger(tenant_id, product_id):
        """Report movement chain breaks; exits with status 1 when any are found."""
        db_session = get_session()
        if product_id is not None:
            product_ids = [product_id]
        else:
            product_ids = [
                row.id for row in db_session.query(Product.id)
                .filter(Product.tenant_id == tenant_id)
                .order_by(Product.id)
            ]

        total = 0
        for pid in product_ids:
            breaks = verify_chain(db_session, tenant_id, pid)
            total += len(breaks)
            for item in breaks:
                click.echo(
                    f"product {pid}: {item['kind']} at movement {item['movementId']} "
                    f"(warehouse {item['warehouseId']}): expected {item['expected']}, found {item['actual']}"
                )

        if total:
            click.echo(click.style(f'{total} break(s) found in {len(product_ids)} product(s).', fg='red'))
            sys.exit(1)
        click.echo(click.style(f'Ledger consistent for {len(product_ids)} product(s).', fg='green'))
