# marketplace/cli.py
# Расчёт выплат продавцам за период (запускается по крону раз в неделю).
# Пример: generate-payouts --days 7
from datetime import datetime, timedelta

import click

from marketplace.core.errors import MarketplaceError
from marketplace.db.base import utcnow
from marketplace.db.session import SessionLocal
from marketplace.services import payouts

# модели нужны для разрешения связей
import marketplace.models.user
import marketplace.models.product
import marketplace.models.order
import marketplace.models.payout
import marketplace.models.payment
import marketplace.models.driver


@click.command("generate-payouts")
@click.option("--start", "period_start", type=click.DateTime(), default=None, help="Начало периода (UTC)")
@click.option("--end", "period_end", type=click.DateTime(), default=None, help="Конец периода (UTC), по умолчанию сейчас")
@click.option("--days", type=int, default=7, show_default=True, help="Длина периода, если --start не задан")
@click.option("--fee", "fee_percent", type=float, default=None, help="Комиссия платформы в процентах")
def main(period_start: datetime | None, period_end: datetime | None, days: int, fee_percent: float | None):
    """Создаёт выплаты по доставленным и оплаченным заказам периода."""
    period_end = period_end or utcnow()
    period_start = period_start or period_end - timedelta(days=days)

    db = SessionLocal()
    try:
        created = payouts.generate_payouts(db, period_start, period_end, fee_percent)
    except MarketplaceError as e:
        raise click.ClickException(e.message)
    finally:
        db.close()

    click.echo(f"Period {period_start.isoformat()} - {period_end.isoformat()}: {len(created)} payouts")
    for payout in created:
        click.echo(
            f"  vendor={payout.vendor_id} orders={payout.order_count} "
            f"sales={payout.total_sales:.2f} fee={payout.platform_fee:.2f} net={payout.net_amount:.2f}"
        )


if __name__ == "__main__":
    main()
