import os
import logging

import click
from flask import Flask, jsonify

from sitelaunch.config import config_by_name
from sitelaunch.extensions import db, migrate


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from sitelaunch import models  # noqa: F401

    # --- Register blueprints ---
    from sitelaunch.blueprints.sites import sites_bp
    from sitelaunch.blueprints.domains import domains_bp

    app.register_blueprint(sites_bp)
    app.register_blueprint(domains_bp)

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify(ok=False, error="Not found."), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(ok=False, error="Method not allowed."), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(ok=False, error="Internal server error."), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("poll-domains")
    @click.option("--limit", type=int, default=None, help="Max connections to check this run.")
    @click.option("--dry-run", is_flag=True, help="List due connections without polling them.")
    def poll_domains(limit, dry_run):
        """Check pending custom domains against the hosting provider.

        Meant for a one-minute cron. Connections checked more recently than
        their phase's interval are skipped.

        Usage:
            flask poll-domains
            flask poll-domains --limit 10 --dry-run
        """
        from sitelaunch.services.reconciliation_service import run_scheduled_poll

        if dry_run:
            click.echo("[DRY RUN] No provider calls will be made.\n")

        summary = run_scheduled_poll(limit=limit, dry_run=dry_run)

        for result in summary["results"]:
            line = f"  {result['connection_id']} {result['domain']}: {result['status']}"
            if result.get("error"):
                line += f" ({result['error']})"
            click.echo(line)

        click.echo("")
        click.echo(
            f"Found {summary['found']}, polled {summary['polled']}, "
            f"skipped {summary['skipped']}, failed {summary['failed']}."
        )

    @app.cli.command("deploy-site")
    @click.argument("site_id")
    @click.argument("html_file", type=click.File("r", encoding="utf-8"))
    @click.option("--message", default=None, help="Release message.")
    def deploy_site(site_id, html_file, message):
        """Publish an HTML file to an existing site.

        Usage:
            flask deploy-site rms-joes-pizza-abc12345 index.html
        """
        from sitelaunch.services.deploy_service import deploy

        try:
            result = deploy(site_id, html_file.read(), message=message)
        except (LookupError, ValueError) as e:
            raise click.ClickException(str(e))

        if not result["success"]:
            raise click.ClickException(f"Deploy failed: {result['error']}")

        click.echo(f"Deployed {site_id}")
        click.echo(f"  URL:      {result['site_url']}")
        click.echo(f"  Version:  {result['version_id']}")
        click.echo(f"  Release:  {result['release_id']}")
