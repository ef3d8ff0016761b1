# Overview: Flask CLI command groups for bootstrap, catalog, stock and sale inspection.

# Commands Legend:
# - flask --app posledger system init-db
#   Create any missing tables (idempotent).
# - flask --app posledger system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app posledger products add --sku TEA-01 --name "Green Tea" --price 4.50 --tax 5 --stock 20 --reorder 5
#   Add a product (price and tax as decimal text, stored as cents / basis points).
# - flask --app posledger products list [--query tea]
# - flask --app posledger stock adjust 3 -2 --reason "Damaged" [--ref "BIN-4"]
# - flask --app posledger stock low
#   Low stock count and the products behind it.
# - flask --app posledger sales show 12

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .money import format_money, parse_money, percent_to_bps
from .services import inventory_service, products_service, sales_service


@click.group('system')
def system_group():
    """Database bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('add')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price', required=True, help='Unit price, e.g. 4.50')
@click.option('--tax', default='0', show_default=True, help='Tax rate percent, e.g. 5 or 7.25')
@click.option('--stock', default=0, show_default=True, type=int)
@click.option('--reorder', default=0, show_default=True, type=int)
@click.option('--category', default=None)
@with_appcontext
def add_product(sku, name, price, tax, stock, reorder, category):
    """Add a product to the catalog."""
    try:
        tax_rate_bps = percent_to_bps(tax)
    except ArithmeticError:
        raise click.BadParameter(f"not a number: {tax}", param_hint="--tax")

    try:
        product = products_service.create_product({
            "sku": sku,
            "name": name,
            "category": category,
            "unit_price_cents": parse_money(price),
            "tax_rate_bps": tax_rate_bps,
            "stock_quantity": stock,
            "reorder_level": reorder,
        })
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


@products_group.command('list')
@click.option('--query', default=None, help='Filter by name or SKU')
@with_appcontext
def list_products(query):
    """List products with price, tax and stock."""
    products = products_service.list_products(query=query)
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"\n{'ID':<5} {'SKU':<16} {'Name':<30} {'Price':>10} {'Tax%':>7} {'Stock':>6} {'Reorder':>8}")
    click.echo("-" * 88)
    for p in products:
        click.echo(
            f"{p.id:<5} {p.sku:<16} {p.name[:30]:<30} {format_money(p.unit_price_cents):>10} "
            f"{p.tax_rate_percent:>7} {p.stock_quantity:>6} {p.reorder_level:>8}"
        )


@click.group('stock')
def stock_group():
    """Inventory commands."""


@stock_group.command('adjust')
@click.argument('product_id', type=int)
@click.argument('delta', type=int)
@click.option('--reason', required=True)
@click.option('--ref', default=None)
@with_appcontext
def adjust(product_id, delta, reason, ref):
    """Apply a manual stock correction (negative DELTA removes stock)."""
    try:
        product = inventory_service.adjust_stock(product_id, delta, reason, ref)
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS {product['sku']}: stock now {product['stock_quantity']}")


@stock_group.command('low')
@with_appcontext
def low_stock():
    """Show products at or below their reorder level."""
    count = inventory_service.low_stock_count()
    click.echo(f"Low stock products: {count}")
    for p in inventory_service.list_low_stock():
        click.echo(f"  {p.sku:<16} {p.name[:30]:<30} stock={p.stock_quantity} reorder={p.reorder_level}")


@click.group('sales')
def sales_group():
    """Sale inspection commands."""


@sales_group.command('show')
@click.argument('sale_id', type=int)
@with_appcontext
def show_sale(sale_id):
    """Print a sale as an invoice."""
    try:
        sale = sales_service.fetch_sale(sale_id)
    except LedgerError as e:
        raise click.ClickException(e.message)

    click.echo(f"\n{sale.sale_number}  [{sale.status}]  {sale.payment_method}")
    if sale.customer_name:
        click.echo(f"Customer: {sale.customer_name}")
    click.echo("-" * 60)
    for line in sale.lines:
        click.echo(
            f"{line.product_name[:28]:<28} {line.quantity:>4} x {format_money(line.unit_price_cents):>9} "
            f"{format_money(line.line_total_cents):>12}"
        )
    click.echo("-" * 60)
    click.echo(f"{'Subtotal':<44}{format_money(sale.subtotal_cents):>16}")
    click.echo(f"{'Discount':<44}{format_money(-sale.discount_cents):>16}")
    click.echo(f"{'Tax':<44}{format_money(sale.tax_cents):>16}")
    click.echo(f"{'Total':<44}{format_money(sale.total_cents):>16}")
    if sale.note:
        click.echo(f"Note: {sale.note}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(sales_group)
