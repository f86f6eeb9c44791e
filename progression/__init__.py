import click
from flask import Flask
from flask.cli import with_appcontext
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

from config import Config, _normalise_prefix


db = SQLAlchemy()
migrate = Migrate()


def create_app(config_class: type[Config] = Config) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_class)

    url_prefix = _normalise_prefix(app.config.get("URL_PREFIX", ""))
    app.config["URL_PREFIX"] = url_prefix

    db.init_app(app)
    migrate.init_app(app, db)

    from . import models  # noqa: F401  # Ensure models registered for migrations

    with app.app_context():
        db.create_all()

    from .api import create_api_blueprint

    app.register_blueprint(create_api_blueprint(), url_prefix=f"{url_prefix}/api")

    @app.cli.command("seed")
    @with_appcontext
    def seed() -> None:
        """Seed a demo teacher, class, subject and course for development."""
        from .seed import seed_data

        seed_data()
        click.echo("Base de données initialisée avec des données de démonstration.")

    @app.cli.command("generate-schedule")
    @click.argument("course_progress_id", type=int)
    @click.option(
        "--regenerate",
        is_flag=True,
        help="Supprime les séances déjà planifiées avant de recalculer.",
    )
    @click.option(
        "--policy",
        type=click.Choice(["split", "reduce_duration"]),
        default=None,
        help="Traitement des leçons plus longues qu'un créneau.",
    )
    @with_appcontext
    def generate_schedule_command(
        course_progress_id: int, regenerate: bool, policy: str | None
    ) -> None:
        """Generate lesson progress for a course from its recurring slots."""
        from .models import CourseProgress
        from .services import InvalidRequestError, generate_lesson_schedule

        course = db.session.get(CourseProgress, course_progress_id)
        if course is None:
            raise click.ClickException(f"Cours {course_progress_id} introuvable.")
        try:
            result = generate_lesson_schedule(
                course.id,
                course.user_id,
                regenerate_existing=regenerate,
                handle_long_lessons=policy,
            )
        except InvalidRequestError as exc:
            raise click.ClickException(str(exc)) from exc

        click.echo(f"{result.generated} séance(s) planifiée(s) pour {course.display_name}.")
        for warning in result.warnings:
            click.echo(f"  ! {warning.lesson_id} : {warning.message}")

    return app
