"""Application layer module.

Contains the checkout orchestrator, which drives checkout attempts
through domain logic and infrastructure, and the outcome notifier.
"""

from buyflow.application.notifier import NOTIFICATIONS, OutcomeNotifier
from buyflow.application.orchestrator import CheckoutOrchestrator

__all__ = [
    "CheckoutOrchestrator",
    "NOTIFICATIONS",
    "OutcomeNotifier",
]
