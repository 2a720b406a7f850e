"""
Command-line interface for Nog Auth
"""

import click
from tabulate import tabulate

from src.admin.export import stream_users_csv, export_filename
from src.admin.service import AdminService
from src.auth.errors import APIError
from src.database import get_db_manager, init_database
from src.database.migrations import run_migrations, get_migration_manager
from src.database.models import UserModel
from src.rbac.seed import seed_rbac
from src.rbac.service import RBACService


@click.group()
def cli():
    """Nog Auth - authentication service and RBAC administration"""
    pass


@cli.command()
def init():
    """Create the database schema and seed roles/permissions"""
    click.echo("Initializing database...")
    init_database()
    click.echo("✓ Database initialized successfully!")


@cli.command()
@click.option('--revision', default='head', help='Target revision for the upgrade')
@click.option('--downgrade', metavar='REV', help='Step back to REV instead (e.g. -1)')
@click.option('--status', is_flag=True, help='Show the current revision and history, change nothing')
def migrate(revision, downgrade, status):
    """Apply pending Alembic migrations"""
    if status:
        manager = get_migration_manager()
        manager.current_revision()
        manager.history()
        return
    click.echo("Running migrations...")
    run_migrations(revision, downgrade)
    click.echo(f"✓ Database schema is at {downgrade or revision}")


@cli.command('seed-rbac')
def seed_rbac_command():
    """Insert the configured seed permissions and roles"""
    created = seed_rbac(get_db_manager())
    click.echo(
        f"✓ Seeded {created['permissions']} permissions, {created['roles']} roles, "
        f"{created['links']} role-permission links"
    )


# User commands
@cli.group()
def user():
    """Manage users"""
    pass


@user.command('create')
@click.option('--email', '-e', required=True, help='Email address')
@click.option('--name', '-n', required=True, help='Display name')
@click.option('--password', '-p', required=True, help='Initial password')
@click.option('--role', '-r', default=None, help='Comma-separated roles (default: configured default role)')
@click.option('--verified', is_flag=True, help='Mark the email as verified')
def create_user(email, name, password, role, verified):
    """Create a user with an email/password credential"""
    try:
        result = AdminService(get_db_manager()).create_user(
            email, password, name, role=role, data={"email_verified": verified}, actor_email="cli"
        )
    except APIError as e:
        raise click.ClickException(e.message)
    created = result["user"]
    click.echo(f"✓ User '{created['email']}' created with ID: {created['id']}")
    click.echo(f"  Role: {created['role']} | Verified: {created['email_verified']}")


@user.command('list')
@click.option('--search', '-s', help='Filter by email')
@click.option('--limit', '-l', default=50, help='Number of users to show')
def list_users(search, limit):
    """List users"""
    result = AdminService(get_db_manager()).list_users(search_value=search, limit=limit,
                                                      sort_by='created_at', sort_direction='desc')
    if not result["users"]:
        click.echo("No users found.")
        return
    data = [
        [u['id'], u['name'], u['email'], u['role'], u['email_verified'], u['banned'], u['created_at'][:16]]
        for u in result["users"]
    ]
    headers = ['ID', 'Name', 'Email', 'Role', 'Verified', 'Banned', 'Created']
    click.echo(tabulate(data, headers=headers, tablefmt='grid'))
    click.echo(f"{len(data)} of {result['total']} users")


@user.command('set-role')
@click.argument('email')
@click.argument('role')
def set_role(email, role):
    """Set the role list of a user (comma-separated)"""
    dbm = get_db_manager()
    with dbm.session_context() as db:
        found = db.query(UserModel).filter(UserModel.email == email.strip().lower()).first()
        user_id = found.id if found else None
    if user_id is None:
        raise click.ClickException(f"User not found: {email}")
    result = AdminService(dbm).set_role(user_id, role.split(','), actor_email="cli")
    click.echo(f"✓ {result['user']['email']} now has role: {result['user']['role']}")


# RBAC commands
@cli.group()
def role():
    """Inspect RBAC roles"""
    pass


@role.command('list')
def list_roles():
    """List roles"""
    result = RBACService(get_db_manager()).list_roles(limit=100)
    if result["roles"]:
        data = [[r['id'], r['key'], r['name'], r['is_active'], r['description'] or ''] for r in result["roles"]]
        click.echo(tabulate(data, headers=['ID', 'Key', 'Name', 'Active', 'Description'], tablefmt='grid'))
    else:
        click.echo("No roles found.")


@cli.group()
def permission():
    """Inspect RBAC permissions"""
    pass


@permission.command('list')
def list_permissions():
    """List permissions"""
    result = RBACService(get_db_manager()).list_permissions(limit=100)
    if result["permissions"]:
        data = [[p['id'], p['key'], p['name'], p['is_active'], p['description'] or ''] for p in result["permissions"]]
        click.echo(tabulate(data, headers=['ID', 'Key', 'Name', 'Active', 'Description'], tablefmt='grid'))
    else:
        click.echo("No permissions found.")


@cli.command('export-users')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output file (default: users-export-<date>.csv)')
def export_users(output):
    """Export all users as CSV"""
    output = output or export_filename()
    rows = 0
    with open(output, 'w', encoding='utf-8', newline='') as fh:
        for line in stream_users_csv(get_db_manager()):
            fh.write(line)
            rows += 1
    click.echo(f"✓ Exported {rows - 1} users to {output}")


if __name__ == '__main__':
    cli()
