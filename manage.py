"""Management script for database setup and scheduled maintenance"""

import click
from flask.cli import FlaskGroup
from flask_migrate import upgrade

from portal import create_app
from portal.extensions import db
from portal.models.user import User
from portal.tiers import DEFAULT_TIER, MembershipTier

app = create_app()
cli = FlaskGroup(create_app=lambda: app)


@cli.command("init-db")
def init_db():
    """Initialize the database"""
    with app.app_context():
        db.create_all()
        print("✅ Database initialized successfully!")


@cli.command("migrate-db")
def migrate_db():
    """Apply any pending database migrations"""
    print("🔄 Applying database migrations...")
    with app.app_context():
        upgrade()
        print("✅ Database migrations applied successfully!")


@cli.command("create-user")
@click.option("--email", prompt="Email")
@click.option("--name", prompt="Full name", default="")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option(
    "--tier",
    type=click.Choice([t.value for t in MembershipTier if t != MembershipTier.FREE]),
    default=DEFAULT_TIER.value,
    show_default=True,
)
def create_user(email, name, password, tier):
    """Create a user, e.g. the first admin"""
    email = email.strip().lower()
    with app.app_context():
        if User.query.filter_by(email=email).first():
            print(f"❌ User with email '{email}' already exists!")
            return

        user = User(email=email, name=name.strip() or None, membership_tier=tier)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"✅ User created: {email} ({tier})")


@cli.command("purge-expired-tokens")
def purge_expired_tokens_command():
    """Delete API tokens whose expiry has passed"""
    from portal.security.authorizer import purge_expired_tokens

    with app.app_context():
        removed = purge_expired_tokens()
        print(f"✅ Removed {removed} expired token(s)")


@cli.command("send-renewal-reminders")
def send_renewal_reminders_command():
    """Queue renewal reminders for subscriptions renewing soon"""
    from portal.billing.subscriptions import send_renewal_reminders

    with app.app_context():
        summary = send_renewal_reminders()
        print(f"✅ Reminders: {summary['sent']} sent, {summary['failed']} failed, {summary['total']} due")


if __name__ == "__main__":
    cli()
