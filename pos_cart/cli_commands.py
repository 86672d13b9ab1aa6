"""
Flask CLI commands for inspecting register carts.

Commands:
- flask cart-show: Print a register's cart and totals
- flask cart-clear: Reset a register's cart to empty
- flask cart-holds: List a register's parked carts
"""

import click
from decimal import Decimal
from flask import current_app

from pos_cart.exceptions import ValidationError
from pos_cart.services.cart_service import CartStore
from pos_cart.services.hold_service import HoldService
from pos_cart.services.persistence_service import CartPersistence, LoadStatus, cart_key, get_cart_backend
from pos_cart.utils.formatters import money, percent
from pos_cart.utils.number_format import parse_decimal


def _open_store(register_id):
    prefix = current_app.config.get('CART_KEY_PREFIX', 'pos')
    return CartStore.rehydrate(CartPersistence(get_cart_backend(), cart_key(prefix, register_id)))


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('cart-show')
    @click.option('--register', 'register_id', required=True, help='Register id')
    @click.option('--tax-rate', type=str, default=None, help='Tax rate in percent (defaults to TAX_RATE)')
    def cart_show(register_id, tax_rate):
        """Print the cart of a register with its totals."""
        try:
            rate = parse_decimal(tax_rate, 'tax_rate') if tax_rate is not None else Decimal(current_app.config.get('TAX_RATE', 0))
        except ValidationError as e:
            raise click.BadParameter(e.message, param_hint='--tax-rate')
        store = _open_store(register_id)

        if store.load_status is not LoadStatus.LOADED:
            click.echo(click.style(f'Snapshot {store.load_status.value}', fg='yellow'))

        summary = store.summary(rate)
        for line in summary['lines']:
            flag = '' if line['taxable'] else ' (no tax)'
            click.echo(f"{line['quantity']:>4} x {line['name'] or line['product_id']}{flag}  {money(line['line_total'])}")

        if store.customer:
            click.echo(f"Customer: {store.customer.name}")
        if store.hold_id:
            click.echo(f"Hold: {store.hold_id}")
        click.echo(f"Subtotal: {money(summary['subtotal'])}")
        click.echo(f"Discount: -{money(summary['discount_amount'])}")
        click.echo(f"Tax ({percent(rate)}): {money(summary['tax_amount'])}")
        click.echo(click.style(f"Total: {money(summary['total'])}", bold=True))

    @app.cli.command('cart-clear')
    @click.option('--register', 'register_id', required=True, help='Register id')
    @click.confirmation_option(prompt='Discard the active cart?')
    def cart_clear(register_id):
        """Reset the cart of a register to empty."""
        store = _open_store(register_id)
        store.clear()
        if store.last_save_ok:
            click.echo(click.style(f'Cart of register {register_id} cleared.', fg='green'))
        else:
            click.echo(click.style('Cart cleared in memory but the snapshot could not be written.', fg='red'))

    @app.cli.command('cart-holds')
    @click.option('--register', 'register_id', required=True, help='Register id')
    def cart_holds(register_id):
        """List parked carts of a register."""
        prefix = current_app.config.get('CART_KEY_PREFIX', 'pos')
        holds = HoldService(get_cart_backend(), prefix, register_id).list_holds()
        if not holds:
            click.echo('No held carts.')
            return
        for hold in holds:
            customer = hold['customer_name'] or '-'
            click.echo(f"{hold['hold_id']}  items={hold['item_count']}  customer={customer}  {hold['notes']}")
