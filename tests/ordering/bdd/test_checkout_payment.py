"""BDD tests for checkout and payment webhooks."""

from pytest_bdd import scenarios

scenarios("features/checkout_payment.feature")
