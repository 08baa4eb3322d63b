import json
from datetime import date

import click

from cor_audit import create_app, db
from cor_audit.compliance_service import calculate_compliance, timeline_projector

app = create_app()


def _json_default(value):
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


@app.cli.command("init-db")
def init_db():
    """Initialize the database tables."""
    db.create_all()
    print("Database initialized.")


@app.cli.command("score")
@click.argument("evidence_file", type=click.File("r"))
@click.option("--company", default=None, help="Company identifier (provenance only).")
@click.option("--as-of", "as_of", default=None, help="Evaluation date, YYYY-MM-DD (default: today).")
def score(evidence_file, company, as_of):
    """Score a JSON list of evidence records and print compliance + timeline."""
    try:
        evaluation_date = date.fromisoformat(as_of) if as_of else date.today()
    except ValueError:
        raise click.BadParameter(f"Invalid date: {as_of}", param_hint="--as-of")
    evidence = json.load(evidence_file)
    if not isinstance(evidence, list):
        raise click.UsageError("Evidence file must contain a JSON list of records")

    result = calculate_compliance(company, evidence, as_of=evaluation_date)
    timeline = timeline_projector().project(result["overall"], result["element_scores"], today=evaluation_date)
    overall = {k: v for k, v in result["overall"].items() if not k.endswith("_gaps")}
    click.echo(json.dumps({"overall": overall, "timeline": timeline}, indent=2, default=_json_default))


if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5000)
