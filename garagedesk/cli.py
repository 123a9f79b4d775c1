import click

from .errors import GarageDeskError
from .services.lifecycle import days_overdue
from .services.money import quantize_money
from .services.projections import low_stock_products, out_of_stock_products, overdue_invoices


def _fetch(app, kind):
    try:
        return app.extensions["garagedesk"]["repository"].list(kind)
    except GarageDeskError as e:
        raise click.ClickException(f"Could not load {kind}: {e}")


def register_cli(app):
    @app.cli.command("overdue-report")
    def overdue_report():
        """List SENT/OVERDUE invoices past their due date."""
        rows = overdue_invoices(_fetch(app, "invoices"))
        if not rows:
            click.echo("✅ No overdue invoices")
            return
        for inv in sorted(rows, key=days_overdue, reverse=True):
            click.echo(
                f"{inv.invoice_number or inv.invoice_id:<14} "
                f"{(inv.client_name or '-'):<24} "
                f"{str(quantize_money(inv.outstanding)):>12} "
                f"{days_overdue(inv):>4} days"
            )
        click.echo(f"{len(rows)} overdue invoice(s)")

    @app.cli.command("low-stock-report")
    @click.option("--out-only", is_flag=True, help="Only products with no stock left")
    def low_stock_report(out_only):
        """List products at or below their minimum stock level."""
        products = _fetch(app, "products")
        rows = out_of_stock_products(products)
        if not out_only:
            rows = rows + low_stock_products(products)
        if not rows:
            click.echo("✅ Stock levels healthy")
            return
        for p in rows:
            click.echo(
                f"{(p.product_code or p.product_id):<14} {p.product_name:<30} "
                f"{p.stock_level:>5} / min {p.min_stock_level}"
            )
        click.echo(f"{len(rows)} product(s) need restocking")
