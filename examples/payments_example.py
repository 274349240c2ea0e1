"""Example payment service measured with @measured.

Run with:
    python examples/payments_example.py

Each charge() call records one measurement under "charge" with the
currency as a tag. Failed charges also carry an "exception" tag.
"""

import logging
import time

from measurepy import LoggingMetricsSink, configure, measured


class InsufficientFunds(Exception):
    pass


class PaymentService:
    def __init__(self, balance: int) -> None:
        self.balance = balance

    @measured(
        "charge",
        tags={"service": "payments"},
        expressions={
            "currency": "#args[1]",
            "size": "'large' if #amount > 100 else 'small'",
        },
    )
    def charge(self, amount: int, currency: str) -> dict[str, str]:
        time.sleep(0.015)
        if amount > self.balance:
            raise InsufficientFunds(f"balance {self.balance} < {amount}")
        self.balance -= amount
        return {"status": "captured"}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")
    configure(LoggingMetricsSink())

    service = PaymentService(balance=100)
    print(service.charge(42, "USD"))
    try:
        service.charge(500, "USD")
    except InsufficientFunds as exc:
        print(f"declined: {exc}")
