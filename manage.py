#!/usr/bin/env python3
"""
pickpool management CLI

Database setup, accounts, data sync and scoring from the command line.
"""

import logging
from datetime import datetime, timedelta, timezone

import click
import requests
from flask.cli import with_appcontext
from flask_migrate import migrate, upgrade
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pickpool import create_app, db
from pickpool.models import Game, Group, User
from pickpool.services.scoring_service import score_week
from pickpool.utils.data_sync import DataSync, DataSyncError
from pickpool.utils.nfl_calendar import get_current_season_and_week, week_for_datetime
from pickpool.utils.odds_api import OddsApiClient, OddsApiError

app = create_app()


def _resolve(season, week):
    current_season, current_week = get_current_season_and_week()
    return season or current_season, week or current_week


@click.group()
def cli():
    """pickpool Management CLI"""
    pass


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


@db_cmd.command("migrate")
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Autogenerate a migration from the models"""
    migrate(message=message)
    click.echo(f"✅ Migration created: {message}")


@db_cmd.command("upgrade")
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command()
@click.argument("username")
@click.argument("password")
@click.option("--name", help="Display name")
@click.option("--email", help="Email address")
@with_appcontext
def create_admin(username, password, name, email):
    """Create an admin user, or promote an existing one"""
    try:
        existing = User.query.filter_by(username=username).first()
        if existing:
            existing.is_admin = True
            db.session.commit()
            click.echo(f"✅ '{username}' is now an admin")
            return

        user = User(username=username, email=email, is_active=True, is_admin=True)
        user.set_name(name or username)
        user.set_password(password)

        db.session.add(user)
        db.session.commit()
        click.echo(f"✅ Created admin user '{username}'")

    except IntegrityError as e:
        db.session.rollback()
        click.echo(f"❌ Email '{email}' is already in use!")
        logging.error(f"Admin creation failed - integrity error: {e}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error creating user: {str(e)}")


@user.command("list")
@with_appcontext
def list_users():
    """List all users"""
    users = User.query.order_by(User.created_at.desc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("Users:")
    for u in users:
        status = "🟢" if u.is_active else "🔴"
        admin = " 👑" if u.is_admin else ""
        click.echo(f"  {status} {u.username} - {u.full_name}{admin}")


# Group Commands
@cli.group()
def group():
    """Group commands"""
    pass


@group.command("list")
@with_appcontext
def list_groups():
    """List active groups"""
    groups = Group.query.filter_by(is_active=True).order_by(Group.name).all()

    if not groups:
        click.echo("No groups found.")
        return

    click.echo("Groups:")
    for g in groups:
        lock = "🔒" if g.has_password else "🔓"
        click.echo(
            f"  {lock} {g.name} [{g.invite_code}] - "
            f"{g.get_member_count()}/{g.max_members} members"
        )


# Data Sync Commands
@cli.group()
def sync():
    """Data synchronization commands"""
    pass


@sync.command()
@click.option("--season", type=int, help="Season year (default: current)")
@click.option("--week", type=int, help="Week number (default: current)")
@with_appcontext
def lines(season, week):
    """Fetch spreads and totals from The Odds API"""
    season, week = _resolve(season, week)
    click.echo(f"Fetching lines for {season} week {week}...")
    try:
        created, updated = OddsApiClient.from_app().sync_week(
            season, week, use_cache=False
        )
        click.echo(f"✅ {created} games created, {updated} lines updated")
    except OddsApiError as e:
        click.echo(f"❌ Error fetching lines: {str(e)}")


@sync.command()
@click.option("--season", type=int, help="Season year (default: current)")
@click.option("--week", type=int, help="Week number (default: current)")
@click.option("--create-missing", is_flag=True, help="Add games not stored yet")
@with_appcontext
def scores(season, week, create_missing):
    """Update game scores from ESPN"""
    season, week = _resolve(season, week)
    click.echo(f"Updating scores for {season} week {week}...")
    try:
        data_sync = DataSync(app.config.get("NFL_API_BASE_URL"))
        updated, errors, finalized = data_sync.update_scores(
            season, week, create_missing=create_missing
        )
        click.echo(
            f"✅ {updated} games updated, {len(finalized)} went final, {errors} errors"
        )
    except (DataSyncError, requests.exceptions.RequestException) as e:
        click.echo(f"❌ Error updating scores: {str(e)}")


# Scoring Commands
@cli.group()
def score():
    """Scoring commands"""
    pass


@score.command("week")
@click.option("--season", type=int, help="Season year (default: current)")
@click.option("--week", type=int, help="Week number (default: current)")
@click.option("--group-id", type=int, help="Only score one group")
@with_appcontext
def score_week_cmd(season, week, group_id):
    """Grade picks and rebuild weekly scores"""
    season, week = _resolve(season, week)
    try:
        summary = score_week(season, week, group_id=group_id)
    except SQLAlchemyError as e:
        click.echo(f"❌ Error scoring week: {str(e)}")
        return

    click.echo(f"🏈 Scored {season} week {week}")
    click.echo(f"   Games:  {summary['games_processed']}")
    click.echo(f"   Picks:  {summary['picks_processed']}")
    click.echo(f"   Scores: {summary['scores_updated']}")


# Seed Commands
@cli.group()
def seed():
    """Sample data commands"""
    pass


@seed.command()
@with_appcontext
def demo():
    """Create two demo users, a group and two upcoming games"""
    season, _ = get_current_season_and_week()
    kickoff = (datetime.now(timezone.utc) + timedelta(days=2)).replace(
        minute=0, second=0, microsecond=0, tzinfo=None
    )
    # Games belong to the week they kick off in
    week = week_for_datetime(season, kickoff)

    try:
        users = []
        for username, name in (("demo", "Demo User"), ("tester", "Test User")):
            u = User.query.filter_by(username=username).first()
            if u is None:
                u = User(username=username)
                u.set_name(name)
                u.set_password(f"{username}-password")
                db.session.add(u)
                click.echo(f"✅ Created user {username}")
            users.append(u)
        db.session.flush()

        family = Group.query.filter_by(name="Family Picks").first()
        if family is None:
            family = Group(
                name="Family Picks",
                description="Weekly picks with the family",
                creator_id=users[0].id,
            )
            db.session.add(family)
            db.session.flush()
            click.echo(f"✅ Created group {family.name} [{family.invite_code}]")
        for u in users:
            if not family.is_user_member(u.id):
                family.add_member(u, is_admin=u.id == family.creator_id)

        demo_games = (
            ("Baltimore Ravens", "Buffalo Bills", -1.5, 48.5, kickoff),
            ("Kansas City Chiefs", "Las Vegas Raiders", -3.5, 44.0, kickoff),
        )
        for home, away, spread, total, game_time in demo_games:
            if Game.find_matchup(season, week, home, away) is None:
                db.session.add(
                    Game(
                        season=season,
                        week=week,
                        home_team=home,
                        away_team=away,
                        spread=spread,
                        over_under=total,
                        game_time=game_time,
                    )
                )
                click.echo(f"✅ Created game {away} @ {home}")

        db.session.commit()
        click.echo("\n🎉 Demo data seeded successfully!")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Error seeding demo data: {str(e)}")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏈 pickpool Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    season, week = get_current_season_and_week()
    click.echo(f"📅 Current Week: {season} week {week}")

    user_count = User.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active Users: {user_count}")

    group_count = Group.query.filter_by(is_active=True).count()
    click.echo(f"🏆 Active Groups: {group_count}")

    game_count = Game.query.filter_by(season=season, week=week).count()
    final_count = Game.query.filter_by(season=season, week=week, status="final").count()
    click.echo(f"🏈 Games this week: {final_count}/{game_count} final")


if __name__ == "__main__":
    with app.app_context():
        cli()
