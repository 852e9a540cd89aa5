"""
Flask CLI commands.

Commands:
- flask init-db: Create missing tables
- flask cleanup-auth-state: Purge expired codes and rate-limit windows
- flask create-portal-client: Create a portal login for a tenant
- flask send-portal-link: Email a portal client a single-use login link
"""

import click
import re
from urllib.parse import urlencode
from sqlalchemy.exc import SQLAlchemyError
from app.database import get_session, create_all
from app.models import PortalClient
from app.services.cleanup_service import run_cleanup
from app.services.email_service import send_portal_link_email
from app.services.plan_service import check_limit
from app.services.portal_session_service import PortalSessionStore
from app.services.tenant_resolver import TenantResolver


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        create_all()
        click.echo(click.style('✅ Tables created', fg='green'))

    @app.cli.command('cleanup-auth-state')
    def cleanup_auth_state():
        """Delete expired one-time codes and stale rate-limit windows."""
        deleted = run_cleanup(get_session())
        click.echo(
            f"Deleted {deleted['one_time_codes']} one-time codes, "
            f"{deleted['rate_limit_windows']} rate-limit windows"
        )

    @app.cli.command('create-portal-client')
    @click.option('--tenant', 'tenant_hint', required=True, help='Tenant id or subdomain')
    @click.option('--email', prompt=True, help='Client email address')
    @click.option('--name', prompt=True, help='Client display name')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Portal password')
    def create_portal_client(tenant_hint, email, name, password):
        """Create a portal client login scoped to one tenant."""
        db_session = get_session()

        email = email.strip().lower()
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Invalid email. Use format: user@example.com', fg='red'))
            return

        if len(password) < 8:
            click.echo(click.style('❌ Password must be at least 8 characters.', fg='red'))
            return

        tenant = TenantResolver(db_session).resolve_hint(tenant_hint)
        if tenant is None:
            click.echo(click.style(f'❌ No active tenant matches: {tenant_hint}', fg='red'))
            return

        existing = db_session.query(PortalClient).filter_by(tenant_id=tenant.id, email=email).first()
        if existing:
            click.echo(click.style(f'❌ A portal client with email {email} already exists in this tenant', fg='red'))
            return

        client_count = db_session.query(PortalClient).filter_by(tenant_id=tenant.id).count()
        allowance = check_limit(db_session, tenant.id, 'portal_clients', client_count)
        if not allowance.allowed:
            click.echo(click.style(f'❌ {allowance.reason}', fg='red'))
            return

        try:
            client = PortalClient(tenant_id=tenant.id, email=email, name=name)
            client.set_password(password)
            db_session.add(client)
            db_session.commit()

            click.echo(click.style('\n✅ Portal client created', fg='green', bold=True))
            click.echo(f'   Tenant: {tenant.subdomain}')
            click.echo(f'   Email: {email}')
            click.echo(f'   ID: {client.id}')

        except SQLAlchemyError as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error creating portal client: {e}', fg='red'))

    @app.cli.command('send-portal-link')
    @click.option('--tenant', 'tenant_hint', required=True, help='Tenant id or subdomain')
    @click.option('--email', required=True, help='Portal client email address')
    def send_portal_link(tenant_hint, email):
        """Email a portal client a single-use login link."""
        db_session = get_session()

        base_domain = app.config.get('TENANT_BASE_DOMAIN', '')
        if not base_domain:
            click.echo(click.style('❌ TENANT_BASE_DOMAIN is not configured', fg='red'))
            return

        tenant = TenantResolver(db_session).resolve_hint(tenant_hint)
        if tenant is None:
            click.echo(click.style(f'❌ No active tenant matches: {tenant_hint}', fg='red'))
            return

        email = email.strip().lower()
        client = db_session.query(PortalClient).filter_by(tenant_id=tenant.id, email=email).first()
        if client is None or not client.is_active:
            click.echo(click.style(f'❌ No active portal client with email {email} in this tenant', fg='red'))
            return

        ttl_minutes = app.config.get('MAGIC_LINK_TTL_MINUTES', 60)
        store = PortalSessionStore(db_session)
        client_id, client_name = client.id, client.name
        raw_token, expires_at = store.issue_magic_link(client_id, ttl_minutes)

        link = f"https://{tenant.subdomain}.{base_domain.lstrip('.')}/portal/login?{urlencode({'token': raw_token})}"
        if not send_portal_link_email(email, client_name, link, ttl_minutes):
            click.echo(click.style('❌ Could not send the login link email', fg='red'))
            return

        click.echo(click.style('\n✅ Login link sent', fg='green', bold=True))
        click.echo(f'   Client ID: {client_id}')
        click.echo(f'   Expires: {expires_at.isoformat()}')
